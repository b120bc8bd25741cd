from typing import Optional

import tree_sitter_java
from tree_sitter import Language, Node, Parser, Tree

from api_call_graph.errors import BodyExtractionUnavailable
from api_call_graph.models.ast_models import SourceClass, SourceMethod
from api_call_graph.tree_sitter_helpers import block_inner_text, node_point, node_text

TYPE_DECLARATIONS = (
    "class_declaration",
    "interface_declaration",
    "enum_declaration",
    "record_declaration",
    "annotation_type_declaration",
)
METHOD_DECLARATIONS = ("method_declaration", "constructor_declaration", "compact_constructor_declaration")


# --- Tree-sitter language loading -------------------------------------------

def load_java_language() -> Language:
    """
    Loads the Tree-sitter Java grammar shipped by the `tree-sitter-java`
    package. Anything going wrong here means we can't index sources at all.
    """
    try:
        return Language(tree_sitter_java.language())
    except (TypeError, ValueError, OSError) as e:
        raise BodyExtractionUnavailable(f"Could not load the Java grammar: {e}") from e


# --- The Indexer -------------------------------------------------------------

class JavaSourceIndex:
    """
    Walks a Tree-sitter Java AST to map each declared type (by binary name,
    so nested types line up with their .class files) to its methods and
    their body text. Parsed files are cached by path.
    """

    def __init__(self):
        self.language = load_java_language()
        self.parser = Parser(self.language)
        self._files: dict[str, dict[str, SourceClass]] = {}

    def parse(self, source: str) -> Tree:
        return self.parser.parse(source.encode("utf-8"))

    def index_source(self, source: str, file_path: Optional[str] = None) -> dict[str, SourceClass]:
        """
        Parses & indexes one Java source file. Returns binary name -> SourceClass.
        """
        if file_path is not None and file_path in self._files:
            return self._files[file_path]

        source_bytes = source.encode("utf-8")
        root: Node = self.parse(source).root_node
        classes: dict[str, SourceClass] = {}
        self._walk_and_index(source_bytes, root, self._find_package(source_bytes, root), [], classes)

        if file_path is not None:
            self._files[file_path] = classes
        return classes

    def find_method_body(self, source: str, file_path: str, class_name: str, method_name: str) -> Optional[str]:
        """Body of the first `method_name` declared directly in `class_name`, or None."""
        cls = self.index_source(source, file_path).get(class_name)
        if cls is None:
            return None
        for method in cls.methods.get(method_name, []):
            if method.body is not None:
                return method.body
        return None

    def class_text(self, source: str, file_path: Optional[str], class_name: str) -> Optional[str]:
        """
        `source` with everything outside `class_name`'s own declaration
        replaced by spaces, nested/local/anonymous types included. Same length
        as `source`, so offsets found in it apply to `source`. None when the
        file doesn't declare `class_name`.
        """
        cls = self.index_source(source, file_path).get(class_name)
        if cls is None:
            return None

        source_bytes = source.encode("utf-8")

        def char_offset(byte_offset: int) -> int:
            return len(source_bytes[:byte_offset].decode("utf-8"))

        start, end = char_offset(cls.start_byte), char_offset(cls.end_byte)
        text = " " * start + source[start:end] + " " * (len(source) - end)
        for span_start, span_end in cls.foreign_spans:
            span_start, span_end = char_offset(span_start), char_offset(span_end)
            text = text[:span_start] + " " * (span_end - span_start) + text[span_end:]
        return text

    # -- AST helpers ----------------------------------------------------------

    def _find_package(self, source_bytes: bytes, root: Node) -> Optional[str]:
        """
        Grabs the package name from a 'package_declaration' node if present.
        """
        for child in root.children:
            if child.type == "package_declaration":
                for part in child.children:
                    if part.type in ("scoped_identifier", "identifier"):
                        return node_text(source_bytes, part)
        return None

    def _walk_and_index(self, source_bytes: bytes, node: Node, pkg: Optional[str],
                        class_stack: list[str], classes: dict[str, SourceClass]):
        """
        DFS that tracks nested type declarations and indexes the methods
        declared directly in each. Method bodies and anonymous classes are not
        descended into: their types get compiler-generated names.
        """
        if node.type in TYPE_DECLARATIONS:
            name_node = node.child_by_field_name("name")
            if name_node is not None:
                if class_stack:
                    classes[self._binary_name(pkg, class_stack)].foreign_spans.append((node.start_byte, node.end_byte))
                simple = node_text(source_bytes, name_node)
                class_stack.append(simple)
                binary_name = self._binary_name(pkg, class_stack)
                line, col = node_point(node)
                classes.setdefault(
                    binary_name,
                    SourceClass(simple, binary_name, line, col, start_byte=node.start_byte, end_byte=node.end_byte),
                )

                for child in node.children:
                    self._walk_and_index(source_bytes, child, pkg, class_stack, classes)

                class_stack.pop()
                return

        if node.type in METHOD_DECLARATIONS:
            if class_stack:
                method = self._index_method(source_bytes, node)
                cls = classes[self._binary_name(pkg, class_stack)]
                cls.methods.setdefault(method.name, []).append(method)
                cls.foreign_spans.extend(self._inner_type_spans(node))
            return

        if node.type in ("object_creation_expression", "enum_constant"):
            if class_stack:
                classes[self._binary_name(pkg, class_stack)].foreign_spans.extend(self._inner_type_spans(node))
            return

        for child in node.children:
            self._walk_and_index(source_bytes, child, pkg, class_stack, classes)

    def _inner_type_spans(self, node: Node) -> list[tuple[int, int]]:
        """
        Byte spans of the local type declarations and anonymous class bodies
        below `node`. Those get compiler-generated names (Outer$1, Outer$1Local).
        """
        spans = []
        for child in node.children:
            if child.type in TYPE_DECLARATIONS or child.type == "class_body":
                spans.append((child.start_byte, child.end_byte))
            else:
                spans.extend(self._inner_type_spans(child))
        return spans

    def _binary_name(self, pkg: Optional[str], class_names: list[str]) -> str:
        """Package + Outer$Inner, the way javac names nested classes."""
        left = pkg + "." if pkg else ""
        return left + "$".join(class_names)

    def _index_method(self, source_bytes: bytes, node: Node) -> SourceMethod:
        if node.type == "method_declaration":
            name_node = node.child_by_field_name("name")
            method_name = node_text(source_bytes, name_node) if name_node else "<anonymous>"
        else:
            method_name = "<init>"

        params = []
        params_node = node.child_by_field_name("parameters")
        if params_node:
            for p in params_node.children:
                if p.type in ("formal_parameter", "spread_parameter"):
                    params.append(node_text(source_bytes, p))

        line, col = node_point(node)
        return SourceMethod(
            name=method_name,
            params=params,
            line=line,
            col=col,
            body=block_inner_text(source_bytes, node.child_by_field_name("body")),
        )
