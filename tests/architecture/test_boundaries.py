from pytest_archon import archrule


def test_reflection_independence() -> None:
    """
    The structural accessor is the bottom layer.
    It must not know about SQLAlchemy or the extractor built on top of it.
    """
    (
        archrule("reflection_is_independent")
        .match("sql_extractor_sqlalchemy.reflection")
        .should_not_import("sqlalchemy*")
        .should_not_import("sql_extractor_sqlalchemy.extractor")
        .should_not_import("sql_extractor_sqlalchemy.engine")
        .check("sql_extractor_sqlalchemy", only_direct_imports=True)
    )


def test_exceptions_isolation() -> None:
    """
    Exceptions are imported everywhere, so they import nothing from the package.
    """
    (
        archrule("exceptions_isolation")
        .match("sql_extractor_sqlalchemy.exceptions")
        .should_not_import("sql_extractor_sqlalchemy.*")
        .check("sql_extractor_sqlalchemy", only_direct_imports=True)
    )


def test_handles_do_not_reach_into_engine() -> None:
    """
    Handle classification reads the ORM query through the structural
    accessor only; engine internals are probed later by the extractor.
    """
    (
        archrule("handles_layering")
        .match("sql_extractor_sqlalchemy.handles")
        .should_not_import("sql_extractor_sqlalchemy.engine")
        .should_not_import("sql_extractor_sqlalchemy.extractor")
        .check("sql_extractor_sqlalchemy", only_direct_imports=True)
    )


def test_engine_probes_do_not_import_extractor() -> None:
    (
        archrule("engine_layering")
        .match("sql_extractor_sqlalchemy.engine")
        .should_not_import("sql_extractor_sqlalchemy.extractor")
        .check("sql_extractor_sqlalchemy", only_direct_imports=True)
    )
