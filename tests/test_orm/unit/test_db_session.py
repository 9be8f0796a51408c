"""数据库会话管理测试

init_database / db_session_scope / with_db_session 与软删除的配合
"""

import asyncio

import pytest
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from yparanoid.config import DatabaseSettings
from yparanoid.orm import (
    Base,
    BaseModel,
    CoreModel,
    db_manager,
    db_session_scope,
    get_engine,
    init_database,
    with_db_session,
)


class DsGadget(BaseModel):
    __tablename__ = "ds_gadget"

    color: Mapped[str] = mapped_column(String(20), default="")


@pytest.fixture
def database():
    """用 init_database 建立内存库，结束后还原 CoreModel.query"""
    previous_query = CoreModel.__dict__.get("query")
    engine, scope = init_database("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    try:
        yield scope
    finally:
        scope.remove()
        engine.dispose()
        if previous_query is None:
            del CoreModel.query
        else:
            CoreModel.query = previous_query


class TestInitDatabase:

    def test_requires_url(self):
        with pytest.raises(ValueError):
            db_manager.init(database_url=None, auto_setup_query=False)

    def test_config_object(self):
        settings = DatabaseSettings(url="sqlite:///:memory:")
        engine, scope = db_manager.init(config=settings, auto_setup_query=False)
        try:
            assert str(engine.url) == "sqlite:///:memory:"
        finally:
            scope.remove()
            engine.dispose()

    def test_engine_exposed(self, database):
        assert get_engine() is db_manager.engine


class TestSessionScope:

    def test_commit_on_exit(self, database):
        with db_session_scope() as session:
            session.add(DsGadget(name="a", color="red"))

        with db_session_scope():
            assert DsGadget.count() == 1

    def test_rollback_on_error(self, database):
        with pytest.raises(RuntimeError):
            with db_session_scope() as session:
                session.add(DsGadget(name="b"))
                session.flush()
                raise RuntimeError("boom")

        with db_session_scope():
            assert DsGadget.count_with_destroyed() == 0

    def test_destroy_inside_scope(self, database):
        with db_session_scope() as session:
            session.add(DsGadget(name="c"))

        with db_session_scope():
            assert DsGadget.first(name="c").destroy() is True

        with db_session_scope():
            assert DsGadget.first(name="c") is None
            assert DsGadget.count_destroyed_only() == 1

    def test_query_property_shares_scope_session(self, database):
        with db_session_scope(scope_id="scope-a") as session:
            assert DsGadget.query.session is session

    def test_nested_scope_keeps_outer_session(self, database):
        """内层作用域结束后，外层的作用域ID与 session 保持不变"""
        with db_session_scope(scope_id="outer") as outer:
            outer.add(DsGadget(name="outer"))
            with db_session_scope(scope_id="inner") as inner:
                assert inner is not outer
                inner.add(DsGadget(name="inner"))

            assert db_manager._get_scope_id() == "outer"
            assert db_manager.get_session() is outer
            assert DsGadget.query.session is outer

        with db_session_scope():
            assert sorted(g.name for g in DsGadget.all()) == ["inner", "outer"]

    def test_no_auto_commit_discards_changes(self, database):
        with db_session_scope(auto_commit=False) as session:
            session.add(DsGadget(name="draft"))

        with db_session_scope():
            assert DsGadget.count_with_destroyed() == 0


class TestWithDbSession:

    def test_sync(self, database):
        @with_db_session()
        def create(session, name):
            session.add(DsGadget(name=name))
            return name

        assert create("d") == "d"

        with db_session_scope():
            assert DsGadget.exists(name="d")

    def test_sync_rollback(self, database):
        @with_db_session()
        def create_and_fail(session):
            session.add(DsGadget(name="e"))
            session.flush()
            raise ValueError("fail")

        with pytest.raises(ValueError):
            create_and_fail()

        with db_session_scope():
            assert DsGadget.count_with_destroyed() == 0

    def test_async(self, database):
        @with_db_session()
        async def destroy_all(session):
            session.add_all([DsGadget(name="f"), DsGadget(name="g")])
            session.flush()
            return len(DsGadget.destroy_all())

        assert asyncio.run(destroy_all()) == 2

        with db_session_scope():
            assert DsGadget.count() == 0
            assert DsGadget.count_destroyed_only() == 2
