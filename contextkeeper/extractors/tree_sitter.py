"""Tree-sitter powered symbol extractor."""

from __future__ import annotations

import hashlib
import importlib
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Tuple

from tree_sitter import Language, Node, Parser

from .base import ExtractionError, Extractor
from ..models import FingerprintMap, SymbolFingerprint

_WHITESPACE = re.compile(r"\s+")

ANONYMOUS_SCOPE = "class@anonymous"


@dataclass(frozen=True)
class LanguageProfile:
    """Grammar node types and rendering rules for one parser-backed language."""

    name: str
    grammar_module: str
    language_func: str
    function_types: FrozenSet[str]
    scope_types: FrozenSet[str]
    keyword: str
    return_separator: str
    typed_parameter: str
    anonymous_scope_types: FrozenSet[str] = frozenset()
    comment_types: FrozenSet[str] = frozenset({"comment"})


PROFILES: Dict[str, LanguageProfile] = {
    "php": LanguageProfile(
        name="php",
        grammar_module="tree_sitter_php",
        language_func="language_php",
        function_types=frozenset({"function_definition", "method_declaration"}),
        scope_types=frozenset(
            {
                "class_declaration",
                "interface_declaration",
                "trait_declaration",
                "enum_declaration",
            }
        ),
        keyword="function",
        return_separator=": ",
        typed_parameter="{type} {name}",
        anonymous_scope_types=frozenset(
            {"anonymous_class", "object_creation_expression"}
        ),
    ),
    "python": LanguageProfile(
        name="python",
        grammar_module="tree_sitter_python",
        language_func="language",
        function_types=frozenset({"function_definition"}),
        scope_types=frozenset({"class_definition"}),
        keyword="def",
        return_separator=" -> ",
        typed_parameter="{name}: {type}",
    ),
}


class TreeSitterExtractor(Extractor):
    """Fingerprints functions and methods from a real syntax tree.

    Signatures render the declaration keyword, the scope-qualified name, each
    parameter with its type annotation and the return type. Body hashes are
    computed over a canonical serialisation of the body subtree (node types
    and token text, comments dropped), so reformatting a body or editing its
    comments does not register as an implementation change. Methods of
    anonymous classes are keyed under ``class@anonymous``.
    """

    structural = True

    def __init__(self, language: str) -> None:
        profile = PROFILES.get(language)
        if profile is None:
            raise ValueError(f"No tree-sitter profile for language '{language}'")
        self.profile = profile
        self._language = _load_language(profile)

    def extract(self, source: str) -> FingerprintMap:
        source_bytes = source.encode("utf-8")
        # Parsers are cheap; one per call keeps extraction safe across worker threads.
        tree = Parser(self._language).parse(source_bytes)
        root = tree.root_node
        if root.has_error:
            line = _first_error_line(root)
            raise ExtractionError(
                f"{self.profile.name} source failed to parse near line {line}"
            )

        structure: FingerprintMap = {}
        # Each frame carries its own stack of enclosing type names.
        stack: List[Tuple[Node, Tuple[str, ...]]] = [(root, ())]
        while stack:
            node, scopes = stack.pop()
            if node.type in self.profile.function_types:
                self._record(node, scopes, source_bytes, structure)
                continue
            if node.type in self.profile.scope_types:
                name_node = node.child_by_field_name("name")
                body = node.child_by_field_name("body")
                if name_node is not None and body is not None:
                    scope_name = _node_text(name_node, source_bytes)
                    stack.append((body, scopes + (scope_name,)))
                continue
            if node.type in self.profile.anonymous_scope_types:
                body = _declaration_body(node)
                if body is not None:
                    stack.append((body, scopes + (ANONYMOUS_SCOPE,)))
                    continue
            for child in reversed(node.named_children):
                stack.append((child, scopes))
        return structure

    def _record(
        self,
        node: Node,
        scopes: Tuple[str, ...],
        source_bytes: bytes,
        structure: FingerprintMap,
    ) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        name = "::".join(scopes + (_node_text(name_node, source_bytes),))
        structure[name] = SymbolFingerprint(
            signature=self._signature(node, name, source_bytes),
            body_hash=self._body_hash(node, source_bytes),
        )

    def _signature(self, node: Node, name: str, source_bytes: bytes) -> str:
        keyword = self.profile.keyword
        if any(child.type == "async" for child in node.children):
            keyword = f"async {keyword}"

        params: List[str] = []
        parameters = node.child_by_field_name("parameters")
        if parameters is not None:
            for param in parameters.named_children:
                if param.type in self.profile.comment_types:
                    continue
                params.append(self._render_parameter(param, source_bytes))

        returns = ""
        return_node = node.child_by_field_name("return_type")
        if return_node is not None:
            returns = f"{self.profile.return_separator}{_collapse(_node_text(return_node, source_bytes))}"

        return f"{keyword} {name}({', '.join(params)}){returns}"

    def _render_parameter(self, param: Node, source_bytes: bytes) -> str:
        type_node = param.child_by_field_name("type")
        name_node = param.child_by_field_name("name")
        if name_node is None and type_node is not None and param.named_children:
            # typed parameters without a name field lead with the bound identifier
            name_node = param.named_children[0]
        if name_node is None:
            return _collapse(_node_text(param, source_bytes))

        name = _collapse(_node_text(name_node, source_bytes))
        if param.type == "variadic_parameter":
            name = f"...{name}"
        if type_node is None:
            return name
        type_text = _collapse(_node_text(type_node, source_bytes))
        return self.profile.typed_parameter.format(type=type_text, name=name)

    def _body_hash(self, node: Node, source_bytes: bytes) -> Optional[str]:
        body = node.child_by_field_name("body")
        if body is None:
            return None
        digest = hashlib.sha256()
        digest.update(self._canonical(body, source_bytes).encode("utf-8"))
        return digest.hexdigest()

    def _canonical(self, body: Node, source_bytes: bytes) -> str:
        parts: List[str] = []
        stack: List[Optional[Node]] = [body]
        while stack:
            current = stack.pop()
            if current is None:
                parts.append(")")
                continue
            if current.type in self.profile.comment_types:
                continue
            if current.child_count == 0:
                parts.append(f"{current.type}:{_node_text(current, source_bytes)}")
                continue
            parts.append(f"({current.type}")
            stack.append(None)
            stack.extend(reversed(current.children))
        return " ".join(parts)


def _load_language(profile: LanguageProfile) -> Language:
    try:
        module = importlib.import_module(profile.grammar_module)
    except ImportError as exc:
        raise ExtractionError(
            f"Grammar package '{profile.grammar_module}' is not installed for {profile.name}"
        ) from exc
    try:
        return Language(getattr(module, profile.language_func)())
    except (AttributeError, TypeError, ValueError) as exc:
        raise ExtractionError(
            f"Grammar package '{profile.grammar_module}' is incompatible with tree-sitter: {exc}"
        ) from exc


def _declaration_body(node: Node) -> Optional[Node]:
    body = node.child_by_field_name("body")
    if body is not None:
        return body
    return next(
        (child for child in node.named_children if child.type == "declaration_list"), None
    )


def _first_error_line(root: Node) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_point[0] + 1
        stack.extend(reversed([child for child in node.children if child.has_error or child.is_missing]))
    return root.start_point[0] + 1


def _node_text(node: Node, source_bytes: bytes) -> str:
    return source_bytes[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


__all__ = ["ANONYMOUS_SCOPE", "LanguageProfile", "PROFILES", "TreeSitterExtractor"]
