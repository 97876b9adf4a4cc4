import pytest

import qheadergen


def _index_for(*classes: qheadergen.ClassDecl) -> qheadergen.TypeIndex:
    return qheadergen.build_type_index(qheadergen.DeclarationUnit(classes=classes))


def test_base_classes_follow_native_ownership_locking_order(
    reference_class: qheadergen.ClassDecl,
) -> None:
    traits = qheadergen.generate_traits(reference_class)

    assert traits.base_classes == (
        "QObject",
        "::rust::cxxqtlib1::CxxQtType<MyObjectRust>",
        "::rust::cxxqtlib1::CxxQtLocking",
    )


def test_custom_base_and_default_rust_name() -> None:
    cls = qheadergen.ClassDecl("MyObject", namespace="cxx_qt", base="QStringListModel")

    traits = qheadergen.generate_traits(cls)

    assert traits.base_classes[0] == "QStringListModel"
    assert traits.base_classes[1] == "::rust::cxxqtlib1::CxxQtType<MyObjectRust>"
    assert traits.base_classes[2] == "::rust::cxxqtlib1::CxxQtLocking"


def test_threading_trait_is_appended_after_locking() -> None:
    cls = qheadergen.ClassDecl("Worker", threading=True)

    traits = qheadergen.generate_traits(cls)

    assert traits.base_classes[-1] == "::rust::cxxqtlib1::CxxQtThreading<Worker>"
    assert traits.base_classes.index(
        "::rust::cxxqtlib1::CxxQtLocking"
    ) < traits.base_classes.index("::rust::cxxqtlib1::CxxQtThreading<Worker>")
    assert "<cxx-qt-common/cxxqt_threading.h>" in traits.includes


def test_trait_includes_without_threading() -> None:
    traits = qheadergen.generate_traits(qheadergen.ClassDecl("Plain"))

    assert traits.includes == frozenset(
        {
            "<cxx-qt-common/cxxqt_type.h>",
            "<cxx-qt-common/cxxqt_locking.h>",
            "<cxx-qt-common/cxxqt_maybelockguard.h>",
        }
    )


def test_static_assert_checks_the_declared_base() -> None:
    cls = qheadergen.ClassDecl("Model", base="QAbstractListModel")

    traits = qheadergen.generate_traits(cls)

    assert traits.assertion == (
        "static_assert(::std::is_base_of<QAbstractListModel, Model>::value,",
        '              "Model must inherit from QAbstractListModel");',
    )


def test_default_constructor_takes_optional_parent() -> None:
    cls = qheadergen.ClassDecl("MyObject")

    block = qheadergen.generate_constructors(cls, _index_for(cls))

    assert block.public == ("explicit MyObject(QObject* parent = nullptr);",)
    assert block.private == ()


def test_declared_constructors_pair_public_with_private_routed_arguments() -> None:
    cls = qheadergen.ClassDecl(
        "MyObject",
        namespace="cxx_qt",
        enums=(qheadergen.EnumDecl("Mode", ("On", "Off")),),
        constructors=(
            qheadergen.ConstructorDecl(
                arguments=(
                    qheadergen.TypeRef("::std::int32_t"),
                    qheadergen.TypeRef("Mode", kind="enum"),
                )
            ),
            qheadergen.ConstructorDecl(),
        ),
    )

    block = qheadergen.generate_constructors(cls, _index_for(cls))

    assert block.public == (
        "explicit MyObject(::std::int32_t arg0, ::cxx_qt::Mode arg1);",
        "explicit MyObject();",
    )
    assert block.private == (
        "explicit MyObject(::cxx_qt::cxx_qt_my_object::CxxQtConstructorArguments0&& args);",
        "explicit MyObject(::cxx_qt::cxx_qt_my_object::CxxQtConstructorArguments1&& args);",
    )


def test_namespace_internals_without_namespace() -> None:
    assert qheadergen.namespace_internals(qheadergen.ClassDecl("MyObject")) == (
        "cxx_qt_my_object"
    )


def test_qml_element_metaobjects() -> None:
    cls = qheadergen.ClassDecl(
        "MyNamedObject", qml=qheadergen.QmlMetadata("MyQmlElement")
    )

    assert qheadergen.generate_metaobjects(cls) == (
        'Q_CLASSINFO("QML.Element", "MyQmlElement")',
    )


def test_qml_singleton_and_uncreatable_metaobjects() -> None:
    cls = qheadergen.ClassDecl(
        "MyObject",
        qml=qheadergen.QmlMetadata("MyObject", uncreatable=True, singleton=True),
    )

    assert qheadergen.generate_metaobjects(cls) == (
        'Q_CLASSINFO("QML.Element", "MyObject")',
        'Q_CLASSINFO("QML.Creatable", "false")',
        "QML_SINGLETON",
    )


def test_no_qml_metadata_means_no_metaobjects() -> None:
    assert qheadergen.generate_metaobjects(qheadergen.ClassDecl("MyObject")) == ()


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("MyObject", "my_object"),
        ("HTTPServer", "http_server"),
        ("Widget3D", "widget3_d"),
        ("Image2D", "image2_d"),
        ("Vec3", "vec3"),
    ],
)
def test_to_snake_case_keeps_digits_with_the_preceding_word(
    name: str, expected: str
) -> None:
    assert qheadergen.to_snake_case(name) == expected


def test_digit_names_drive_internals_namespace_and_header_filename() -> None:
    cls = qheadergen.ClassDecl("Widget3D", namespace="app")

    assert qheadergen.namespace_internals(cls) == "app::cxx_qt_widget3_d"
    assert qheadergen.header_filename(cls) == "widget3_d.cxxqt.h"
