"""Qt header generator for Rust-backed QObjects.

Projects declarative QObject descriptions (base class, enums, invokable
methods) into the C++ class declarations consumed by moc and the C++
compiler. Produces one `<class>.cxxqt.h` header per declared class.

Usage:
    python qheadergen.py --decl my_object.xml --output-dir include/cxx-qt-gen
"""

import argparse
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

DEFAULT_OUTPUT_DIR = Path("cxx-qt-gen")
DEFAULT_CXX_FILE_STEM = "ffi"
DEFAULT_INCLUDE_PREFIX = "cxx-qt-gen"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    decl: Path
    output_dir: Path
    classes: tuple[str, ...]


@dataclass(frozen=True)
class DiscoveryConfig:
    command: str
    decl: Path


VALID_ERROR_CODES = {
    "PATH_NOT_FOUND",
    "UNKNOWN_CLASS",
    "CONFLICT_GENERATE_DISCOVERY",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate Qt class headers for Rust-backed QObjects"
    )

    parser.add_argument("--decl", type=Path, default=None)
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument(
        "--class", dest="classes", action="append", nargs="+", default=None
    )
    parser.add_argument("--list-classes", action="store_true", default=False)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def normalize_class_names(raw_classes: object) -> tuple[str, ...]:
    if raw_classes is None:
        return tuple()
    normalized: list[str] = []
    for entry in raw_classes:
        if isinstance(entry, list):
            normalized.extend(entry)
        else:
            normalized.append(entry)
    # Drop repeats but keep the order the user asked for.
    return tuple(dict.fromkeys(normalized))


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    classes = normalize_class_names(args.classes)

    if args.list_classes and classes:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "--class cannot be combined with --list-classes.",
            "Choose either generate mode or --list-classes.",
        )

    decl = validate_path_exists(
        args.decl,
        "--decl",
        "Pass the QObject declaration file: --decl /path/to/bridge.xml",
    )

    if args.list_classes:
        return DiscoveryConfig(command="list-classes", decl=decl)

    return GenerateConfig(decl=decl, output_dir=args.output_dir, classes=classes)


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Constants ---=== #

INDENT = "  "
MOC_RUN_MACRO = "Q_MOC_RUN"
ENUM_MACRO = "Q_ENUM"
METATYPE_MACRO = "Q_DECLARE_METATYPE"
DEFAULT_BASE_CLASS = "QObject"

TRAIT_NAMESPACE = "::rust::cxxqtlib1"
OWNERSHIP_TRAIT = "CxxQtType"
LOCKING_TRAIT = "CxxQtLocking"
THREADING_TRAIT = "CxxQtThreading"

INCLUDE_CSTDINT = "<cstdint>"
INCLUDE_OWNERSHIP = "<cxx-qt-common/cxxqt_type.h>"
INCLUDE_LOCKING = "<cxx-qt-common/cxxqt_locking.h>"
INCLUDE_LOCK_GUARD = "<cxx-qt-common/cxxqt_maybelockguard.h>"
INCLUDE_THREADING = "<cxx-qt-common/cxxqt_threading.h>"

ENUM_WIDTHS = frozenset({8, 16, 32, 64})
ENUM_VIEWS = frozenset({"namespace", "moc", "alias", "opaque"})
TYPE_KINDS = frozenset({"native", "enum", "object"})

HEADER_SUFFIX = ".cxxqt.h"
UNIT_LABEL = "<bridge>"

CPP_KEYWORDS = {
    "alignas", "alignof", "and", "asm", "auto", "bool", "break", "case",
    "catch", "char", "class", "const", "constexpr", "const_cast", "continue",
    "decltype", "default", "delete", "do", "double", "dynamic_cast", "else",
    "enum", "explicit", "export", "extern", "false", "float", "for", "friend",
    "goto", "if", "inline", "int", "long", "mutable", "namespace", "new",
    "noexcept", "not", "nullptr", "operator", "or", "private", "protected",
    "public", "register", "reinterpret_cast", "return", "short", "signed",
    "sizeof", "static", "static_assert", "static_cast", "struct", "switch",
    "template", "this", "thread_local", "throw", "true", "try", "typedef",
    "typeid", "typename", "union", "unsigned", "using", "virtual", "void",
    "volatile", "while", "xor",
}

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PATH_RE = re.compile(r"^(::)?[A-Za-z_][A-Za-z0-9_]*(::[A-Za-z_][A-Za-z0-9_]*)*$")


# ===--- Declaration errors ---=== #


class DeclarationError(Exception):
    """Base for defects in a QObject declaration.

    Raised before any header text exists. Carries the qualified name of the
    offending entity so the caller can point at it.
    """

    code = "DECLARATION_ERROR"

    def __init__(
        self, qualified_name: str, message: str, suggestion: str | None = None
    ):
        super().__init__(f"{qualified_name}: {message}")
        self.qualified_name = qualified_name
        self.message = message
        self.suggestion = suggestion


class InvalidDeclaration(DeclarationError):
    code = "INVALID_DECLARATION"


class UnresolvedTypeReference(DeclarationError):
    code = "UNRESOLVED_TYPE_REFERENCE"


class NamingCollision(DeclarationError):
    code = "NAMING_COLLISION"


# ===--- Declaration model ---=== #


@dataclass(frozen=True)
class TypeRef:
    """Type descriptor for a parameter, return value or constructor argument.

    `native` names are emitted verbatim. `enum` and `object` names must
    resolve to an enum or class of the same DeclarationUnit and may be bare
    or namespace qualified.
    """

    name: str
    kind: str = "native"
    is_const: bool = False
    is_reference: bool = False
    is_pointer: bool = False


@dataclass(frozen=True)
class ParamDecl:
    name: str
    type: TypeRef


@dataclass(frozen=True)
class MethodDecl:
    name: str
    params: tuple[ParamDecl, ...] = ()
    return_type: TypeRef | None = None
    is_const: bool = False
    is_invokable: bool = True


@dataclass(frozen=True)
class EnumDecl:
    name: str
    variants: tuple[str, ...]
    width: int = 32
    signed: bool = True

    @property
    def ordinals(self) -> tuple[tuple[str, int], ...]:
        return tuple((variant, index) for index, variant in enumerate(self.variants))


@dataclass(frozen=True)
class ConstructorDecl:
    arguments: tuple[TypeRef, ...] = ()


@dataclass(frozen=True)
class QmlMetadata:
    name: str
    uncreatable: bool = False
    singleton: bool = False


@dataclass(frozen=True)
class ClassDecl:
    name: str
    namespace: str = ""
    base: str = DEFAULT_BASE_CLASS
    rust_name: str = ""
    enums: tuple[EnumDecl, ...] = ()
    methods: tuple[MethodDecl, ...] = ()
    constructors: tuple[ConstructorDecl, ...] = ()
    threading: bool = False
    qml: QmlMetadata | None = None

    @property
    def rust_type(self) -> str:
        return self.rust_name or f"{self.name}Rust"

    @property
    def qualified_name(self) -> str:
        return join_namespace(self.namespace, self.name)


@dataclass(frozen=True)
class DeclarationUnit:
    classes: tuple[ClassDecl, ...]
    cxx_file_stem: str = DEFAULT_CXX_FILE_STEM
    include_prefix: str = DEFAULT_INCLUDE_PREFIX

    @property
    def bridge_include(self) -> str:
        if self.include_prefix:
            return f"{self.include_prefix}/{self.cxx_file_stem}.cxx.h"
        return f"{self.cxx_file_stem}.cxx.h"


# ===--- Naming helpers ---=== #


def join_namespace(namespace: str, name: str) -> str:
    namespace = namespace.strip(":")
    return f"{namespace}::{name}" if namespace else name


def qualify(namespace: str, name: str) -> str:
    """Fully qualified C++ name with a leading `::`."""
    return f"::{join_namespace(namespace, name)}"


def to_snake_case(name: str) -> str:
    """`MyObject` -> `my_object`, `HTTPServer` -> `http_server`.

    A digit stays attached to the word before it: `Widget3D` -> `widget3_d`.
    """
    return re.sub(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])", "_", name).lower()


def wrapper_name(method_name: str) -> str:
    return f"{method_name}Wrapper"


def namespace_internals(cls: ClassDecl) -> str:
    return join_namespace(cls.namespace, f"cxx_qt_{to_snake_case(cls.name)}")


def header_filename(cls: ClassDecl) -> str:
    return f"{to_snake_case(cls.name)}{HEADER_SUFFIX}"


def open_namespace(namespace: str) -> list[str]:
    return [f"namespace {namespace} {{"] if namespace else []


def close_namespace(namespace: str) -> list[str]:
    return [f"}} // namespace {namespace}"] if namespace else []


# ===--- Type resolution ---=== #


class EnumEntry(NamedTuple):
    owner: ClassDecl
    enum: EnumDecl


@dataclass(frozen=True)
class TypeIndex:
    """Every enum and class of a unit, keyed by `namespace::Name`."""

    enums: dict[str, EnumEntry]
    classes: dict[str, ClassDecl]


@dataclass(frozen=True)
class ResolvedType:
    kind: str
    namespace: str
    name: str
    owner: str | None = None
    enum: EnumDecl | None = None

    @property
    def cpp_name(self) -> str:
        if self.kind == "native":
            return self.name
        return qualify(self.namespace, self.name)


def build_type_index(unit: DeclarationUnit) -> TypeIndex:
    enums: dict[str, EnumEntry] = {}
    classes: dict[str, ClassDecl] = {}
    for cls in unit.classes:
        classes.setdefault(cls.qualified_name, cls)
        for enum in cls.enums:
            enums.setdefault(
                join_namespace(cls.namespace, enum.name), EnumEntry(cls, enum)
            )
    return TypeIndex(enums=enums, classes=classes)


def resolve_type(
    index: TypeIndex, type_ref: TypeRef, context: ClassDecl, where: str
) -> ResolvedType:
    if type_ref.kind == "native":
        return ResolvedType(kind="native", namespace="", name=type_ref.name)
    if type_ref.kind not in TYPE_KINDS:
        raise InvalidDeclaration(
            where,
            f"unknown type kind {type_ref.kind!r}",
            "Use one of: native, enum, object.",
        )

    table = index.enums if type_ref.kind == "enum" else index.classes
    key = type_ref.name.removeprefix("::")
    if "::" in key:
        candidates = [key] if key in table else []
    else:
        local = join_namespace(context.namespace, key)
        if local in table:
            candidates = [local]
        else:
            candidates = [k for k in table if k.rsplit("::", 1)[-1] == key]

    if len(candidates) != 1:
        detail = "is ambiguous" if candidates else "is not declared in this unit"
        raise UnresolvedTypeReference(
            where,
            f"{type_ref.kind} type {type_ref.name!r} {detail}",
            "Declare it in the same declaration file or qualify it with its namespace.",
        )

    qualified = candidates[0]
    namespace, _, name = qualified.rpartition("::")
    if type_ref.kind == "enum":
        entry = index.enums[qualified]
        return ResolvedType(
            kind="enum",
            namespace=namespace,
            name=name,
            owner=entry.owner.qualified_name,
            enum=entry.enum,
        )
    return ResolvedType(kind="object", namespace=namespace, name=name, owner=qualified)


# ===--- Validation ---=== #


def _check_identifier(name: str, where: str, what: str) -> None:
    if not _IDENT_RE.match(name or ""):
        raise InvalidDeclaration(where, f"invalid {what} identifier {name!r}")
    if name in CPP_KEYWORDS:
        raise NamingCollision(
            where,
            f"{what} {name!r} collides with a C++ keyword",
            "Rename it in the declaration.",
        )


def _check_unique(names: list[str], where: str, what: str) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise InvalidDeclaration(
                join_namespace(where, name), f"duplicate {what} name {name!r}"
            )
        seen.add(name)


def _validate_enum(enum: EnumDecl, where: str) -> None:
    _check_identifier(enum.name, where, "enum")
    if not enum.variants:
        raise InvalidDeclaration(where, "enum must declare at least one variant")
    if enum.width not in ENUM_WIDTHS:
        raise InvalidDeclaration(
            where,
            f"unsupported enum width {enum.width}",
            "Use one of: 8, 16, 32, 64.",
        )
    for variant in enum.variants:
        _check_identifier(variant, f"{where}::{variant}", "variant")
    _check_unique(list(enum.variants), where, "variant")


def _validate_type(
    index: TypeIndex, type_ref: TypeRef, cls: ClassDecl, where: str
) -> None:
    if not type_ref.name:
        raise InvalidDeclaration(where, "type descriptor has no name")
    resolve_type(index, type_ref, cls, where)


def _validate_class(cls: ClassDecl, index: TypeIndex) -> None:
    where = cls.qualified_name
    _check_identifier(cls.name, where, "class")
    if cls.namespace:
        for segment in cls.namespace.split("::"):
            _check_identifier(segment, where, "namespace")
    if not cls.base:
        raise InvalidDeclaration(
            where, "missing base type", "Declare a base class such as QObject."
        )
    if not _PATH_RE.match(cls.base):
        raise InvalidDeclaration(where, f"invalid base type {cls.base!r}")
    if not _PATH_RE.match(cls.rust_type):
        raise InvalidDeclaration(where, f"invalid Rust type {cls.rust_type!r}")
    if cls.qml is not None:
        _check_identifier(cls.qml.name, where, "QML element")

    for enum in cls.enums:
        _validate_enum(enum, f"{where}::{enum.name}")
    _check_unique([enum.name for enum in cls.enums], where, "enum")

    method_names = [method.name for method in cls.methods]
    _check_unique(method_names, where, "method")
    enum_names = {enum.name for enum in cls.enums}
    for method in cls.methods:
        method_where = f"{where}::{method.name}"
        _check_identifier(method.name, method_where, "method")
        if method.name == cls.name:
            raise NamingCollision(
                method_where, "method name collides with the class constructor"
            )
        if method.name in enum_names:
            raise NamingCollision(
                method_where, f"method name collides with nested enum {method.name!r}"
            )
        if method.is_invokable and wrapper_name(method.name) in method_names:
            raise NamingCollision(
                method_where,
                f"invokable wrapper {wrapper_name(method.name)!r} collides with "
                "a declared method",
            )
        if method.is_invokable and wrapper_name(method.name) in enum_names:
            raise NamingCollision(
                method_where,
                f"invokable wrapper {wrapper_name(method.name)!r} collides with "
                "a nested enum",
            )
        for param in method.params:
            _check_identifier(param.name, f"{method_where}::{param.name}", "parameter")
            _validate_type(index, param.type, cls, f"{method_where}::{param.name}")
        _check_unique([param.name for param in method.params], method_where, "parameter")
        if method.return_type is not None:
            _validate_type(index, method.return_type, cls, method_where)

    signatures: dict[tuple[str, ...], int] = {}
    for position, constructor in enumerate(cls.constructors):
        ctor_where = f"{where}::constructor{position}"
        for argument in constructor.arguments:
            _validate_type(index, argument, cls, ctor_where)
        rendered = tuple(
            render_type(resolve_type(index, argument, cls, ctor_where), argument)
            for argument in constructor.arguments
        )
        if rendered in signatures:
            raise NamingCollision(
                ctor_where,
                f"constructor signature duplicates constructor {signatures[rendered]}",
            )
        signatures[rendered] = position


def validate_unit(unit: DeclarationUnit) -> TypeIndex:
    """Check a declaration unit and return its type index.

    Runs every structural, resolution and collision check up front so that
    generation never starts on a defective declaration.

    Raises:
        InvalidDeclaration: Structural violation (duplicates, empty enum,
            missing base type, bad identifier).
        UnresolvedTypeReference: A parameter, return or constructor type
            names an enum or class that is not in the unit.
        NamingCollision: Two entities would project to the same C++
            identifier or header file.
    """
    if not unit.classes:
        raise InvalidDeclaration(
            UNIT_LABEL, "declaration must contain at least one class"
        )
    if not _IDENT_RE.match(unit.cxx_file_stem):
        raise InvalidDeclaration(
            UNIT_LABEL, f"invalid cxx_file_stem {unit.cxx_file_stem!r}"
        )

    qualified = [cls.qualified_name for cls in unit.classes]
    _check_unique(qualified, "", "class")

    index = build_type_index(unit)

    # Namespace-scope identifiers: classes and their projected enums.
    scope: dict[str, str] = {}
    for cls in unit.classes:
        scope[cls.qualified_name] = f"class {cls.qualified_name}"
    for cls in unit.classes:
        for enum in cls.enums:
            key = join_namespace(cls.namespace, enum.name)
            owner = scope.get(key)
            if owner is not None and owner != f"enum of {cls.qualified_name}":
                raise NamingCollision(
                    f"{cls.qualified_name}::{enum.name}",
                    f"namespace-scoped enum collides with {owner}",
                    "Rename the enum or move the class to another namespace.",
                )
            scope[key] = f"enum of {cls.qualified_name}"

    filenames: dict[str, str] = {}
    for cls in unit.classes:
        filename = header_filename(cls)
        if filename in filenames:
            raise NamingCollision(
                cls.qualified_name,
                f"header {filename!r} is also generated for {filenames[filename]}",
            )
        filenames[filename] = cls.qualified_name

    for cls in unit.classes:
        _validate_class(cls, index)

    return index


# ===--- Enum projection ---=== #


def enum_underlying_type(enum: EnumDecl) -> str:
    prefix = "int" if enum.signed else "uint"
    return f"::std::{prefix}{enum.width}_t"


def project_enum(enum: EnumDecl, namespace: str, view: str) -> list[str]:
    """Render one view of an enum.

    Views:
        namespace -> `enum class E : T { ... };` at namespace scope.
        moc       -> literal class-nested copy, only seen by moc.
        alias     -> class-nested `using E = ::ns::E;` for the compiler.
        opaque    -> `enum class E : T;` forward declaration.

    Raises:
        InvalidDeclaration: The enum has no variants.
        ValueError: Unknown view.
    """
    if view not in ENUM_VIEWS:
        raise ValueError(f"Unknown enum view: {view}")
    if not enum.variants:
        raise InvalidDeclaration(
            join_namespace(namespace, enum.name),
            "enum must declare at least one variant",
        )

    underlying = enum_underlying_type(enum)
    if view == "namespace":
        lines = [f"enum class {enum.name} : {underlying}", "{"]
        lines.extend(f"{INDENT}{variant}," for variant in enum.variants[:-1])
        lines.append(f"{INDENT}{enum.variants[-1]}")
        lines.append("};")
        return lines
    if view == "opaque":
        return [f"enum class {enum.name} : {underlying};"]
    if view == "moc":
        variants = ", ".join(enum.variants)
        return [f"{INDENT}enum class {enum.name} : {underlying}{{ {variants} }};"]
    return [f"{INDENT}using {enum.name} = {qualify(namespace, enum.name)};"]


def project_nested_enum(enum: EnumDecl, namespace: str) -> list[str]:
    registration = f"{INDENT}{enum_registration(enum).render()}"
    return [
        f"#ifdef {MOC_RUN_MACRO}",
        *project_enum(enum, namespace, "moc"),
        registration,
        "#else",
        *project_enum(enum, namespace, "alias"),
        registration,
        "#endif",
    ]


# ===--- Reflection registration ---=== #


class RegistrationRequest(NamedTuple):
    macro: str
    target: str

    def render(self) -> str:
        return f"{self.macro}({self.target})"


def enum_registration(enum: EnumDecl) -> RegistrationRequest:
    return RegistrationRequest(ENUM_MACRO, enum.name)


def metatype_registration(cls: ClassDecl) -> RegistrationRequest:
    return RegistrationRequest(METATYPE_MACRO, f"{cls.qualified_name}*")


def collect_registrations(cls: ClassDecl) -> tuple[RegistrationRequest, ...]:
    """Every registration macro for a class: each enum, then the class."""
    requests = [enum_registration(enum) for enum in cls.enums]
    requests.append(metatype_registration(cls))
    return tuple(requests)


# ===--- Method signatures ---=== #


class MethodSignature(NamedTuple):
    return_type: str
    parameters: str


def render_type(resolved: ResolvedType, type_ref: TypeRef) -> str:
    text = resolved.cpp_name
    if type_ref.is_const:
        text += " const"
    if type_ref.is_pointer:
        text += "*"
    if type_ref.is_reference:
        text += "&"
    return text


def render_parameters(
    params: tuple[ParamDecl, ...], index: TypeIndex, cls: ClassDecl, where: str
) -> str:
    if not params:
        return "()"
    rendered = []
    for param in params:
        resolved = resolve_type(index, param.type, cls, f"{where}::{param.name}")
        rendered.append(f"{INDENT * 2}{render_type(resolved, param.type)} {param.name}")
    return "(\n" + ",\n".join(rendered) + ")"


def render_signature(
    method: MethodDecl, index: TypeIndex, cls: ClassDecl
) -> MethodSignature:
    where = f"{cls.qualified_name}::{method.name}"
    if method.return_type is None:
        return_type = "void"
    else:
        resolved = resolve_type(index, method.return_type, cls, where)
        return_type = render_type(resolved, method.return_type)
    return MethodSignature(
        return_type=return_type,
        parameters=render_parameters(method.params, index, cls, where),
    )


# ===--- Invokables ---=== #


@dataclass(frozen=True)
class InvokablePath:
    """Both call-path nodes of one invokable.

    Attributes:
        method: Declared method name.
        public: Reflection-visible `Q_INVOKABLE` declaration.
        wrapper: Private boundary-safe declaration; the only path into Rust.
    """

    method: str
    public: str
    wrapper: str


def generate_invokable(
    method: MethodDecl, index: TypeIndex, cls: ClassDecl
) -> InvokablePath | None:
    if not method.is_invokable:
        return None
    signature = render_signature(method, index, cls)
    constness = " const" if method.is_const else ""
    return InvokablePath(
        method=method.name,
        public=(
            f"Q_INVOKABLE {signature.return_type} "
            f"{method.name}{signature.parameters}{constness};"
        ),
        wrapper=(
            f"{signature.return_type} "
            f"{wrapper_name(method.name)}{signature.parameters}{constness} noexcept;"
        ),
    )


def generate_invokables(
    cls: ClassDecl, index: TypeIndex
) -> tuple[InvokablePath, ...]:
    paths = (generate_invokable(method, index, cls) for method in cls.methods)
    return tuple(path for path in paths if path is not None)


# ===--- Traits and locking ---=== #


@dataclass(frozen=True)
class TraitBlock:
    base_classes: tuple[str, ...]
    includes: frozenset[str]
    assertion: tuple[str, ...]


def generate_traits(cls: ClassDecl) -> TraitBlock:
    # Fixed order: native base, ownership, locking.
    base_classes = [
        cls.base,
        f"{TRAIT_NAMESPACE}::{OWNERSHIP_TRAIT}<{cls.rust_type}>",
        f"{TRAIT_NAMESPACE}::{LOCKING_TRAIT}",
    ]
    includes = {INCLUDE_OWNERSHIP, INCLUDE_LOCKING, INCLUDE_LOCK_GUARD}
    if cls.threading:
        base_classes.append(f"{TRAIT_NAMESPACE}::{THREADING_TRAIT}<{cls.name}>")
        includes.add(INCLUDE_THREADING)

    prefix = "static_assert("
    assertion = (
        f"{prefix}::std::is_base_of<{cls.base}, {cls.name}>::value,",
        f'{" " * len(prefix)}"{cls.name} must inherit from {cls.base}");',
    )
    return TraitBlock(
        base_classes=tuple(base_classes),
        includes=frozenset(includes),
        assertion=assertion,
    )


# ===--- Constructors ---=== #


class ConstructorBlock(NamedTuple):
    public: tuple[str, ...]
    private: tuple[str, ...]


def generate_constructors(cls: ClassDecl, index: TypeIndex) -> ConstructorBlock:
    if not cls.constructors:
        return ConstructorBlock(
            public=(f"explicit {cls.name}(QObject* parent = nullptr);",),
            private=(),
        )

    internals = namespace_internals(cls)
    public: list[str] = []
    private: list[str] = []
    for position, constructor in enumerate(cls.constructors):
        where = f"{cls.qualified_name}::constructor{position}"
        arguments = ", ".join(
            f"{render_type(resolve_type(index, argument, cls, where), argument)} arg{i}"
            for i, argument in enumerate(constructor.arguments)
        )
        public.append(f"explicit {cls.name}({arguments});")
        # Routed arguments are only constructed by the bridge.
        private.append(
            f"explicit {cls.name}(::{internals}::CxxQtConstructorArguments{position}&& args);"
        )
    return ConstructorBlock(public=tuple(public), private=tuple(private))


# ===--- QML metadata ---=== #


def generate_metaobjects(cls: ClassDecl) -> tuple[str, ...]:
    if cls.qml is None:
        return ()
    # moc does not expand QML_ELEMENT.
    items = [f'Q_CLASSINFO("QML.Element", "{cls.qml.name}")']
    if cls.qml.uncreatable:
        items.append('Q_CLASSINFO("QML.Creatable", "false")')
    if cls.qml.singleton:
        items.append("QML_SINGLETON")
    return tuple(items)


# ===--- Forward declarations ---=== #


class ForwardDeclare(NamedTuple):
    namespace: str
    line: str


def _referenced_types(cls: ClassDecl):
    for method in cls.methods:
        if not method.is_invokable:
            continue
        where = f"{cls.qualified_name}::{method.name}"
        for param in method.params:
            yield param.type, f"{where}::{param.name}"
        if method.return_type is not None:
            yield method.return_type, where
    for position, constructor in enumerate(cls.constructors):
        for argument in constructor.arguments:
            yield argument, f"{cls.qualified_name}::constructor{position}"


def collect_forward_declares(
    cls: ClassDecl, index: TypeIndex
) -> tuple[ForwardDeclare, ...]:
    """Declarations for classes and enums owned elsewhere, in first-use order."""
    seen: set[ForwardDeclare] = set()
    result: list[ForwardDeclare] = []
    for type_ref, where in _referenced_types(cls):
        resolved = resolve_type(index, type_ref, cls, where)
        if resolved.owner is None or resolved.owner == cls.qualified_name:
            continue
        if resolved.kind == "object":
            line = f"class {resolved.name};"
        else:
            line = project_enum(resolved.enum, resolved.namespace, "opaque")[0]
        declare = ForwardDeclare(resolved.namespace, line)
        if declare not in seen:
            seen.add(declare)
            result.append(declare)
    return tuple(result)


# ===--- Class generation ---=== #


@dataclass(frozen=True)
class GeneratedClass:
    """Every fragment of one class header, before assembly.

    Attributes:
        decl: The class the fragments were projected from.
        includes: Sorted, de-duplicated include targets.
        forward_declares: Declarations of entities owned by other classes.
        namespace_enums: One `namespace` view per enum, in declaration order.
        nested_enums: One `#ifdef Q_MOC_RUN` block per enum.
        metaobjects: Class-info items placed after Q_OBJECT.
        base_classes: Base list in trait order.
        invokables: Public/wrapper pair per invokable method.
        constructors: Public and private constructor declarations.
        assertion: static_assert lines for the native base.
        registrations: Q_ENUM per enum, then Q_DECLARE_METATYPE.
    """

    decl: ClassDecl
    includes: tuple[str, ...]
    forward_declares: tuple[ForwardDeclare, ...]
    namespace_enums: tuple[tuple[str, ...], ...]
    nested_enums: tuple[tuple[str, ...], ...]
    metaobjects: tuple[str, ...]
    base_classes: tuple[str, ...]
    invokables: tuple[InvokablePath, ...]
    constructors: ConstructorBlock
    assertion: tuple[str, ...]
    registrations: tuple[RegistrationRequest, ...]


def generate_class(cls: ClassDecl, index: TypeIndex) -> GeneratedClass:
    traits = generate_traits(cls)
    return GeneratedClass(
        decl=cls,
        includes=tuple(sorted(traits.includes | {INCLUDE_CSTDINT})),
        forward_declares=collect_forward_declares(cls, index),
        namespace_enums=tuple(
            tuple(project_enum(enum, cls.namespace, "namespace")) for enum in cls.enums
        ),
        nested_enums=tuple(
            tuple(project_nested_enum(enum, cls.namespace)) for enum in cls.enums
        ),
        metaobjects=generate_metaobjects(cls),
        base_classes=traits.base_classes,
        invokables=generate_invokables(cls, index),
        constructors=generate_constructors(cls, index),
        assertion=traits.assertion,
        registrations=collect_registrations(cls),
    )


# ===--- Header assembly ---=== #


def _forward_declare_lines(generated: GeneratedClass) -> tuple[list[str], list[str]]:
    own = generated.decl.namespace
    local: list[str] = []
    foreign: dict[str, list[str]] = {}
    for declare in generated.forward_declares:
        if declare.namespace == own:
            local.append(declare.line)
        else:
            foreign.setdefault(declare.namespace, []).append(declare.line)

    foreign_lines: list[str] = []
    for namespace, lines in foreign.items():
        foreign_lines.extend(open_namespace(namespace))
        foreign_lines.extend(lines)
        foreign_lines.extend(close_namespace(namespace))
        foreign_lines.append("")
    return foreign_lines, local


def assemble_header(unit: DeclarationUnit, generated: GeneratedClass) -> str:
    """Order the fragments of one class into its header text.

    Layout:
        #pragma once + includes
        forward declarations and namespace-scoped enums
        #include of the bridge header
        class body
        static_assert
        Q_DECLARE_METATYPE outside all namespaces

    Returns:
        Complete header text with a trailing newline.
    """
    cls = generated.decl
    namespace = cls.namespace
    foreign_lines, local_lines = _forward_declare_lines(generated)

    lines: list[str] = ["#pragma once", ""]
    lines.extend(f"#include {include}" for include in generated.includes)
    lines.append("")

    lines.extend(foreign_lines)
    lines.extend(open_namespace(namespace))
    lines.append(f"class {cls.name};")
    lines.extend(local_lines)
    for enum_lines in generated.namespace_enums:
        lines.extend(enum_lines)
        lines.append("")
    lines.extend(close_namespace(namespace))
    if not generated.namespace_enums or namespace:
        lines.append("")

    lines.append(f'#include "{unit.bridge_include}"')
    lines.append("")

    lines.extend(open_namespace(namespace))
    lines.append(f"class {cls.name}")
    lines.append(f"  : public {generated.base_classes[0]}")
    lines.extend(f"  , public {base}" for base in generated.base_classes[1:])
    lines.append("{")
    lines.append(f"{INDENT}Q_OBJECT")
    lines.extend(f"{INDENT}{item}" for item in generated.metaobjects)
    lines.append("public:")
    for nested in generated.nested_enums:
        lines.extend(nested)
        lines.append("")
    lines.append(f"{INDENT}virtual ~{cls.name}() = default;")
    lines.append("")

    lines.append("public:")
    lines.extend(f"{INDENT}{path.public}" for path in generated.invokables)
    lines.extend(f"{INDENT}{decl}" for decl in generated.constructors.public)

    private = [path.wrapper for path in generated.invokables]
    private.extend(generated.constructors.private)
    if private:
        lines.append("")
        lines.append("private:")
        lines.extend(f"{INDENT}{decl}" for decl in private)
    lines.append("};")
    lines.append("")

    lines.extend(generated.assertion)
    lines.extend(close_namespace(namespace))
    lines.append("")
    lines.extend(
        request.render()
        for request in generated.registrations
        if request.macro == METATYPE_MACRO
    )
    return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class GeneratedHeader:
    filename: str
    qualified_name: str
    text: str


def generate_headers(
    unit: DeclarationUnit, classes: tuple[ClassDecl, ...] | None = None
) -> tuple[GeneratedHeader, ...]:
    """Validate the unit, then project each selected class into its header.

    The whole unit is validated even when only some classes are selected,
    since classes reference each other's enums and types. Nothing is
    returned unless every selected class projects cleanly.
    """
    index = validate_unit(unit)
    selected = unit.classes if classes is None else classes
    headers = []
    for cls in selected:
        generated = generate_class(cls, index)
        headers.append(
            GeneratedHeader(
                filename=header_filename(cls),
                qualified_name=cls.qualified_name,
                text=assemble_header(unit, generated),
            )
        )
    return tuple(headers)


def generate_header(unit: DeclarationUnit, class_name: str) -> str:
    for cls in unit.classes:
        if class_name in (cls.name, cls.qualified_name):
            return generate_headers(unit, (cls,))[0].text
    raise KeyError(class_name)


# ===--- Declaration loading ---=== #


def _require_attr(el: ET.Element, attr: str, where: str) -> str:
    value = el.get(attr)
    if value is None:
        raise InvalidDeclaration(where, f"<{el.tag}> is missing the {attr!r} attribute")
    return value


def _parse_bool(el: ET.Element, attr: str, default: bool, where: str) -> bool:
    raw = el.get(attr)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise InvalidDeclaration(where, f"{attr}={raw!r} is not a boolean")


def parse_type_ref(el: ET.Element, where: str) -> TypeRef:
    return TypeRef(
        name=_require_attr(el, "type", where),
        kind=el.get("kind", "native"),
        is_const=_parse_bool(el, "const", False, where),
        is_reference=_parse_bool(el, "ref", False, where),
        is_pointer=_parse_bool(el, "pointer", False, where),
    )


def parse_enum(el: ET.Element, where: str) -> EnumDecl:
    name = _require_attr(el, "name", where)
    enum_where = f"{where}::{name}"
    raw_width = el.get("width", "32")
    try:
        width = int(raw_width)
    except ValueError:
        raise InvalidDeclaration(
            enum_where, f"width={raw_width!r} is not an integer"
        ) from None
    variants = tuple(
        _require_attr(variant, "name", enum_where) for variant in el.findall("variant")
    )
    return EnumDecl(
        name=name,
        variants=variants,
        width=width,
        signed=_parse_bool(el, "signed", True, enum_where),
    )


def parse_method(el: ET.Element, where: str) -> MethodDecl:
    name = _require_attr(el, "name", where)
    method_where = f"{where}::{name}"
    params = tuple(
        ParamDecl(
            name=_require_attr(param, "name", method_where),
            type=parse_type_ref(param, method_where),
        )
        for param in el.findall("param")
    )
    return_el = el.find("return")
    return MethodDecl(
        name=name,
        params=params,
        return_type=(
            parse_type_ref(return_el, method_where) if return_el is not None else None
        ),
        is_const=_parse_bool(el, "const", False, method_where),
        is_invokable=_parse_bool(el, "invokable", True, method_where),
    )


def parse_class(el: ET.Element, default_namespace: str) -> ClassDecl:
    namespace = el.get("namespace", default_namespace).strip(":")
    name = _require_attr(el, "name", namespace or "<qobject>")
    where = join_namespace(namespace, name)

    qml = None
    qml_el = el.find("qml")
    if qml_el is not None:
        qml = QmlMetadata(
            name=qml_el.get("element", name),
            uncreatable=_parse_bool(qml_el, "uncreatable", False, where),
            singleton=_parse_bool(qml_el, "singleton", False, where),
        )

    constructors = tuple(
        ConstructorDecl(
            arguments=tuple(
                parse_type_ref(arg, where) for arg in ctor.findall("param")
            )
        )
        for ctor in el.findall("constructor")
    )

    return ClassDecl(
        name=name,
        namespace=namespace,
        base=el.get("base", DEFAULT_BASE_CLASS),
        rust_name=el.get("rust", ""),
        enums=tuple(parse_enum(enum, where) for enum in el.findall("enum")),
        methods=tuple(parse_method(method, where) for method in el.findall("method")),
        constructors=constructors,
        threading=_parse_bool(el, "threading", False, where),
        qml=qml,
    )


def parse_declaration_unit(root: ET.Element) -> DeclarationUnit:
    if root.tag != "bridge":
        raise InvalidDeclaration(
            root.tag, f"expected a <bridge> root element, found <{root.tag}>"
        )
    namespace = root.get("namespace", "")
    return DeclarationUnit(
        classes=tuple(parse_class(el, namespace) for el in root.findall("qobject")),
        cxx_file_stem=root.get("cxx_file_stem", DEFAULT_CXX_FILE_STEM),
        include_prefix=root.get("include_prefix", DEFAULT_INCLUDE_PREFIX),
    )


def load_declaration_unit(path: Path) -> DeclarationUnit:
    return parse_declaration_unit(ET.parse(path).getroot())


# ===--- Discovery ---=== #


@dataclass(frozen=True)
class ClassSummary:
    qualified_name: str
    base: str
    enum_count: int
    invokable_count: int
    threading: bool
    header: str


def gather_class_summaries(unit: DeclarationUnit) -> list[ClassSummary]:
    return [
        ClassSummary(
            qualified_name=cls.qualified_name,
            base=cls.base,
            enum_count=len(cls.enums),
            invokable_count=sum(1 for m in cls.methods if m.is_invokable),
            threading=cls.threading,
            header=header_filename(cls),
        )
        for cls in unit.classes
    ]


def format_classes_table(summaries: list[ClassSummary], source_label: str) -> str:
    """Return the complete --list-classes output as a string.

    Output format:

        2 QObject classes in my_object.xml:

          cxx_qt::my_object::MyObject  QObject           2 enums  1 invokables  my_object.cxxqt.h
          cxx_qt::my_object::Model     QStringListModel  0 enums  3 invokables  model.cxxqt.h  threading

    Name and base column widths come from the widest value in summaries.
    """
    lines = [f"{len(summaries)} QObject classes in {source_label}:", ""]
    if not summaries:
        lines.append("")
        return "\n".join(lines)

    name_width = max(len(s.qualified_name) for s in summaries)
    base_width = max(len(s.base) for s in summaries)
    for s in summaries:
        enum_col = f"{s.enum_count} enums"
        invokable_col = f"{s.invokable_count} invokables"
        row = (
            f"  {s.qualified_name.ljust(name_width)}  {s.base.ljust(base_width)}"
            f"  {enum_col:<8} {invokable_col:<13} {s.header}"
        )
        if s.threading:
            row += "  threading"
        lines.append(row)
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    unit = load_declaration_unit(config.decl)
    if config.command == "list-classes":
        summaries = gather_class_summaries(unit)
        print(format_classes_table(summaries, config.decl.name), end="")


# ===--- Writer ---=== #


@dataclass(frozen=True)
class WriteConfig:
    """Shared generation metadata embedded in every header banner.

    Attributes:
        source_name: Declaration file name, e.g. "my_object.xml".
        bridge_include: Bridge header the generated headers include.
    """

    source_name: str
    bridge_include: str


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing a single generated header.

    Attributes:
        filename: Filename written, e.g. "my_object.cxxqt.h".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


@dataclass(frozen=True)
class HeaderSetWriteResult:
    """Result of writing every generated header of a run.

    Attributes:
        output_dir: Directory all files were written to.
        files: One FileWriteResult per header, in write order.
    """

    output_dir: Path
    files: tuple[FileWriteResult, ...]

    @property
    def total_lines(self) -> int:
        return sum(f.line_count for f in self.files)


_HEADER_BORDER: str = "// x-------------------------------------------x //"


def format_file_header(config: WriteConfig) -> list[str]:
    """Return the banner comment lines placed above every generated header.

    Output format:
        // x-------------------------------------------x //
        // | Generated by qheadergen. Do not edit.
        // | Source: my_object.xml
        // | Bridge: cxx-qt-gen/ffi.cxx.h
        // x-------------------------------------------x //

    Raises:
        ValueError: If config.source_name is empty.
    """
    if not config.source_name:
        raise ValueError("source_name must not be empty")
    return [
        _HEADER_BORDER,
        "// | Generated by qheadergen. Do not edit.",
        f"// | Source: {config.source_name}",
        f"// | Bridge: {config.bridge_include}",
        _HEADER_BORDER,
    ]


def assemble_header_source(config: WriteConfig, header: GeneratedHeader) -> str:
    return "\n".join(format_file_header(config)) + "\n\n" + header.text


def write_header(
    output_dir: Path, config: WriteConfig, header: GeneratedHeader
) -> FileWriteResult:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    content = assemble_header_source(config, header)
    file_path = output_dir / header.filename
    file_path.write_text(content, encoding="utf-8")
    resolved = file_path.resolve()
    return FileWriteResult(
        filename=header.filename,
        path=resolved,
        line_count=content.count("\n"),
        byte_count=len(resolved.read_bytes()),
    )


def write_headers(
    output_dir: Path, config: WriteConfig, headers: tuple[GeneratedHeader, ...]
) -> HeaderSetWriteResult:
    """Write every header in the given order.

    Callers pass headers that are already fully generated, so a declaration
    defect never leaves a half-written set behind. OSError propagates
    without rollback.
    """
    files = tuple(write_header(output_dir, config, header) for header in headers)
    return HeaderSetWriteResult(output_dir=Path(output_dir), files=files)


# ===--- Pipeline ---=== #


def select_classes(
    unit: DeclarationUnit, names: tuple[str, ...]
) -> tuple[ClassDecl, ...]:
    if not names:
        return unit.classes
    selected: list[ClassDecl] = []
    for name in names:
        matches = [c for c in unit.classes if name in (c.name, c.qualified_name)]
        if not matches:
            known = ", ".join(c.qualified_name for c in unit.classes)
            raise ConfigError(
                "UNKNOWN_CLASS",
                f"Class not found in declaration: {name}",
                f"Declared classes: {known}",
            )
        selected.extend(m for m in matches if m not in selected)
    return tuple(selected)


def run_generate(config: GenerateConfig) -> HeaderSetWriteResult:
    """Execute the generation pipeline for a GenerateConfig.

    Stages: load -> select -> validate + project -> write -> summary.

    Raises:
        OSError: Declaration file unreadable or filesystem write failure.
        ET.ParseError: Malformed declaration XML.
        ConfigError: --class names a class that is not declared.
        DeclarationError: Defect in the declaration; nothing is written.
    """
    print(f"Parsing: {config.decl}")
    unit = load_declaration_unit(config.decl)
    enum_count = sum(len(c.enums) for c in unit.classes)
    method_count = sum(len(c.methods) for c in unit.classes)
    print(
        f"  Declarations: {len(unit.classes)} classes, "
        f"{enum_count} enums, {method_count} methods"
    )

    selected = select_classes(unit, config.classes)
    headers = generate_headers(unit, selected)
    print(f"  Projected: {len(headers)} headers")

    write_config = WriteConfig(
        source_name=config.decl.name, bridge_include=unit.bridge_include
    )
    result = write_headers(config.output_dir, write_config, headers)
    print(
        f"  Written: {len(result.files)} files, "
        f"{result.total_lines} lines to {result.output_dir}"
    )

    summary = build_generation_summary(write_config, selected, result)
    print(format_generation_summary(summary), end="")
    return result


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationCounts:
    classes: int
    enums: int
    variants: int
    invokables: int
    threaded: int


@dataclass(frozen=True)
class GenerationSummary:
    source_label: str
    bridge_include: str
    output_dir: str
    counts: GenerationCounts
    files: tuple[FileWriteResult, ...]


def build_generation_counts(classes: tuple[ClassDecl, ...]) -> GenerationCounts:
    return GenerationCounts(
        classes=len(classes),
        enums=sum(len(c.enums) for c in classes),
        variants=sum(len(e.variants) for c in classes for e in c.enums),
        invokables=sum(1 for c in classes for m in c.methods if m.is_invokable),
        threaded=sum(1 for c in classes if c.threading),
    )


def build_generation_summary(
    write_config: WriteConfig,
    classes: tuple[ClassDecl, ...],
    write_result: HeaderSetWriteResult,
) -> GenerationSummary:
    return GenerationSummary(
        source_label=write_config.source_name,
        bridge_include=write_config.bridge_include,
        output_dir=str(write_result.output_dir),
        counts=build_generation_counts(classes),
        files=write_result.files,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary to the console report.

    Output format:

        Qt headers generated:

          Source:     my_object.xml
          Bridge:     cxx-qt-gen/ffi.cxx.h
          Output:     include

          Declarations projected:
            Classes:        1
            Enums:          2  (4 variants)
            Invokables:     1

          Files written:
            my_object.cxxqt.h                60 lines

          Total: 60 lines across 1 files

    The "(N threaded)" annotation on the Classes row appears only when at
    least one class enables threading. Returns a string with exactly one
    trailing newline.
    """
    counts = summary.counts
    lines: list[str] = [
        "Qt headers generated:",
        "",
        f"  Source:     {summary.source_label}",
        f"  Bridge:     {summary.bridge_include}",
        f"  Output:     {summary.output_dir}",
        "",
        "  Declarations projected:",
    ]

    classes_row = f"    {'Classes:':<12}{counts.classes:>6}"
    if counts.threaded:
        classes_row += f"  ({counts.threaded} threaded)"
    lines.append(classes_row)
    lines.append(
        f"    {'Enums:':<12}{counts.enums:>6}  ({counts.variants} variants)"
    )
    lines.append(f"    {'Invokables:':<12}{counts.invokables:>6}")

    lines.append("")
    lines.append("  Files written:")
    for file_result in summary.files:
        line_str = f"{file_result.line_count:>6,} lines"
        lines.append(f"    {file_result.filename:<28} {line_str}")

    total_lines = sum(f.line_count for f in summary.files)
    lines.append("")
    lines.append(f"  Total: {total_lines:,} lines across {len(summary.files)} files")
    lines.append("")
    return "\n".join(lines)


# ===--- Main generation ---=== #


def main(argv: list[str] | None = None):
    try:
        config = build_config(argv)
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
            return
        run_generate(config)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err
    except DeclarationError as err:
        print(f"Declaration error [{err.code}] {err.qualified_name}: {err.message}")
        if err.suggestion:
            print(f"Hint: {err.suggestion}")
        raise SystemExit(1) from err
    except (OSError, ET.ParseError) as err:
        print(f"Error: {err}")
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
