import argparse
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import qheadergen  # noqa: E402

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def reference_header() -> str:
    return (FIXTURES_DIR / "qenum.h").read_text(encoding="utf-8")


@pytest.fixture
def reference_class() -> qheadergen.ClassDecl:
    return qheadergen.ClassDecl(
        name="MyObject",
        namespace="cxx_qt::my_object",
        rust_name="MyObjectRust",
        enums=(
            qheadergen.EnumDecl("MyEnum", ("A",)),
            qheadergen.EnumDecl("MyOtherEnum", ("X", "Y", "Z")),
        ),
        methods=(
            qheadergen.MethodDecl(
                name="myInvokable",
                params=(
                    qheadergen.ParamDecl(
                        "qenum", qheadergen.TypeRef("MyEnum", kind="enum")
                    ),
                    qheadergen.ParamDecl(
                        "other_qenum", qheadergen.TypeRef("MyOtherEnum", kind="enum")
                    ),
                ),
                is_const=True,
                is_invokable=True,
            ),
        ),
    )


@pytest.fixture
def reference_unit(
    reference_class: qheadergen.ClassDecl,
) -> qheadergen.DeclarationUnit:
    return qheadergen.DeclarationUnit(classes=(reference_class,))


@pytest.fixture
def make_unit() -> Callable[..., qheadergen.DeclarationUnit]:
    def _make_unit(
        *classes: qheadergen.ClassDecl, **overrides: object
    ) -> qheadergen.DeclarationUnit:
        return qheadergen.DeclarationUnit(classes=tuple(classes), **overrides)

    return _make_unit


@pytest.fixture
def write_decl(tmp_path: Path) -> Callable[[str], Path]:
    def _write_decl(xml_text: str, name: str = "bridge.xml") -> Path:
        path = tmp_path / name
        path.write_text(textwrap.dedent(xml_text).lstrip(), encoding="utf-8")
        return path

    return _write_decl


@pytest.fixture
def make_args(tmp_path: Path) -> Callable[..., argparse.Namespace]:
    decl = tmp_path / "bridge.xml"
    decl.write_text("<bridge />\n", encoding="utf-8")

    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "decl": decl,
            "output_dir": tmp_path / "out",
            "classes": None,
            "list_classes": False,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args
