"""软删除生命周期测试

destroy / restore / 物理删除 / session.delete() 转软删除
"""

import pytest
from sqlalchemy import Boolean, String, select, update
from sqlalchemy.orm import Mapped, mapped_column

from yparanoid.orm import BaseModel, CoreModel
from yparanoid.orm.paranoid import (
    MarkerPolicy,
    ParanoidMixin,
    exclusive_scope,
    generate_paranoid_mixin_class,
    paranoid_registry,
)


# ==================== 测试模型定义 ====================

class LifecycleWidget(BaseModel):
    """带钩子的软删除模型"""
    __tablename__ = "lc_widget"

    label: Mapped[str] = mapped_column(String(50), default="")

    events = []

    def before_destroy(self):
        LifecycleWidget.events.append(("before", self.label))
        if self.label == "locked":
            return False
        return None

    def after_destroy(self):
        LifecycleWidget.events.append(("after", self.label))


FlagParanoidMixin = generate_paranoid_mixin_class(
    field_name="is_deleted",
    destroyed_value=True,
    not_destroyed_value=False,
    field_type=Boolean(),
    class_name="FlagParanoidMixin",
)


class LifecycleFlag(FlagParanoidMixin, CoreModel):
    """布尔标记的软删除模型"""
    __tablename__ = "lc_flag"

    label: Mapped[str] = mapped_column(String(50), default="")


class LifecycleCustom(ParanoidMixin, CoreModel):
    """自定义标记字段与策略"""
    __tablename__ = "lc_custom"
    __paranoid__ = MarkerPolicy(field_name="state", destroyed_value="gone", not_destroyed_value="live")

    state: Mapped[str] = mapped_column(String(10), default="live")
    label: Mapped[str] = mapped_column(String(50), default="")


class LifecyclePlain(CoreModel):
    """不启用软删除的模型"""
    __tablename__ = "lc_plain"

    label: Mapped[str] = mapped_column(String(50), default="")


# ==================== 测试类 ====================

class TestRegistration:
    """模型注册"""

    def test_concrete_models_registered(self):
        assert paranoid_registry.is_registered(LifecycleWidget)
        assert paranoid_registry.is_registered(LifecycleFlag)
        assert paranoid_registry.is_registered(LifecycleCustom)

    def test_abstract_and_plain_models_not_registered(self):
        assert not paranoid_registry.is_registered(BaseModel)
        assert not paranoid_registry.is_registered(LifecyclePlain)

    def test_policy_attached(self):
        assert LifecycleWidget.__paranoid__.field_name == "deleted_at"
        assert LifecycleFlag.__paranoid__.destroyed_value is True


class TestDestroy:
    """软删除"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope
        LifecycleWidget.events.clear()
        yield

    def test_destroy_hides_record(self):
        w = LifecycleWidget(label="a").save(commit=True)
        keep = LifecycleWidget(label="b").save(commit=True)

        assert w.destroy(commit=True) is True

        assert LifecycleWidget.get(w.id) is None
        assert [x.id for x in LifecycleWidget.all()] == [keep.id]
        assert LifecycleWidget.count() == 1
        assert LifecycleWidget.count_with_destroyed() == 2

    def test_destroy_sets_marker_and_is_destroyed(self):
        w = LifecycleWidget(label="a").save(commit=True)
        assert w.is_destroyed is False

        w.destroy(commit=True)

        assert w.deleted_at is not None
        assert w.is_destroyed is True
        assert LifecycleWidget.get_with_destroyed(w.id).deleted_at is not None

    def test_destroy_twice_returns_false(self):
        w = LifecycleWidget(label="a").save(commit=True)
        w.destroy(commit=True)
        first_marker = w.deleted_at

        assert w.destroy(commit=True) is False
        assert LifecycleWidget.get_with_destroyed(w.id).deleted_at == first_marker

    def test_hooks_run_in_order(self):
        w = LifecycleWidget(label="a").save(commit=True)
        w.destroy(commit=True)
        assert LifecycleWidget.events == [("before", "a"), ("after", "a")]

    def test_before_destroy_false_aborts(self):
        w = LifecycleWidget(label="locked").save(commit=True)

        assert w.destroy(commit=True) is False

        assert LifecycleWidget.events == [("before", "locked")]
        assert LifecycleWidget.get(w.id) is not None
        assert w.deleted_at is None

    def test_destroy_without_callbacks_skips_hooks(self):
        w = LifecycleWidget(label="locked").save(commit=True)

        assert w.destroy_without_callbacks() == 1
        self.session_scope.commit()

        assert LifecycleWidget.events == []
        assert LifecycleWidget.get(w.id) is None

    def test_destroy_pending_instance_flushes_first(self):
        w = LifecycleWidget(label="new").save()
        assert w.destroy(commit=True) is True
        assert LifecycleWidget.count_destroyed_only() == 1

    def test_destroy_inside_exclusive_scope_keeps_default_filter(self):
        """exclusive scope 中再次删除已删除的记录：不重写标记，不触发 after_destroy"""
        w = LifecycleWidget(label="a").save(commit=True)
        w.destroy(commit=True)
        first_marker = LifecycleWidget.get_with_destroyed(w.id).deleted_at
        LifecycleWidget.events.clear()

        with exclusive_scope():
            assert w.destroy(commit=True) is False

        assert ("after", "a") not in LifecycleWidget.events
        assert LifecycleWidget.get_with_destroyed(w.id).deleted_at == first_marker

    def test_sequential_markers_do_not_decrease(self):
        first = LifecycleWidget(label="a").save(commit=True)
        second = LifecycleWidget(label="b").save(commit=True)

        first.destroy(commit=True)
        second.destroy(commit=True)

        first_marker = LifecycleWidget.get_with_destroyed(first.id).deleted_at
        second_marker = LifecycleWidget.get_with_destroyed(second.id).deleted_at
        assert first_marker <= second_marker

    def test_destroy_by_id(self):
        w = LifecycleWidget(label="a").save(commit=True)
        assert LifecycleWidget.destroy_by_id(w.id, commit=True) is True
        assert LifecycleWidget.destroy_by_id(w.id, commit=True) is False
        assert LifecycleWidget.destroy_by_id(9999) is False

    def test_destroy_all_by_criteria(self):
        LifecycleWidget(label="x").save()
        LifecycleWidget(label="x").save()
        LifecycleWidget(label="locked").save()
        LifecycleWidget(label="y").save(commit=True)

        destroyed = LifecycleWidget.destroy_all(
            LifecycleWidget.label.in_(["x", "locked"]), commit=True
        )

        assert len(destroyed) == 2
        assert sorted(w.label for w in LifecycleWidget.all()) == ["locked", "y"]

    def test_destroy_all_by_filters(self):
        LifecycleWidget(label="x").save()
        LifecycleWidget(label="y").save(commit=True)

        destroyed = LifecycleWidget.destroy_all(label="x", commit=True)

        assert [w.label for w in destroyed] == ["x"]
        assert LifecycleWidget.count() == 1


class TestRestore:
    """恢复"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope
        yield

    def test_instance_restore(self):
        w = LifecycleWidget(label="a").save(commit=True)
        w.destroy(commit=True)

        assert w.restore(commit=True) == 1

        assert w.deleted_at is None
        assert LifecycleWidget.get(w.id) is not None

    def test_class_restore_by_id(self):
        w = LifecycleWidget(label="a").save(commit=True)
        w_id = w.id
        w.destroy(commit=True)

        assert LifecycleWidget.restore(w_id, commit=True) == 1
        assert LifecycleWidget.count() == 1

    def test_class_restore_syncs_loaded_instance(self):
        """按主键恢复时，identity map 中已加载的实例同步清除标记"""
        w = LifecycleWidget(label="a").save(commit=True)
        w.destroy(commit=True)
        assert w.is_destroyed is True

        assert LifecycleWidget.restore(w.id) == 1

        assert w.deleted_at is None
        self.session_scope.commit()
        assert LifecycleWidget.get(w.id) is w

    def test_restore_live_record_is_noop(self):
        w = LifecycleWidget(label="a").save(commit=True)
        assert LifecycleWidget.restore(w.id, commit=True) == 0
        assert LifecycleWidget.get(w.id) is not None

    def test_restore_missing_record(self):
        assert LifecycleWidget.restore(9999, commit=True) == 0

    def test_restore_flag_policy(self):
        f = LifecycleFlag(label="a").save(commit=True)
        f.destroy(commit=True)
        assert f.is_deleted is True
        assert LifecycleFlag.count() == 0

        f.restore(commit=True)

        assert f.is_deleted is False
        assert LifecycleFlag.count() == 1

    def test_restore_custom_policy(self):
        c = LifecycleCustom(label="a").save(commit=True)
        c.destroy(commit=True)
        assert c.state == "gone"
        assert LifecycleCustom.find() == []

        LifecycleCustom.restore(c.id, commit=True)

        assert [x.state for x in LifecycleCustom.find()] == ["live"]


class TestHardDelete:
    """物理删除"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope
        yield

    def test_class_delete_removes_destroyed_row(self):
        w = LifecycleWidget(label="a").save(commit=True)
        w_id = w.id
        w.destroy(commit=True)

        assert LifecycleWidget.delete(w_id, commit=True) == 1
        assert LifecycleWidget.count_with_destroyed() == 0

    def test_instance_delete(self):
        w = LifecycleWidget(label="a").save(commit=True)
        assert w.delete(commit=True) == 1
        assert LifecycleWidget.count_with_destroyed() == 0

    def test_delete_all_ignores_marker(self):
        a = LifecycleWidget(label="x").save()
        LifecycleWidget(label="x").save()
        LifecycleWidget(label="y").save(commit=True)
        a.destroy(commit=True)

        assert LifecycleWidget.delete_all(label="x", commit=True) == 2
        assert [w.label for w in LifecycleWidget.all_with_destroyed()] == ["y"]

    def test_plain_model_delete_uses_session(self):
        p = LifecyclePlain(label="a").save(commit=True)
        p.delete(commit=True)
        assert LifecyclePlain.count() == 0


class TestSessionDelete:
    """session.delete() 转为软删除"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope
        LifecycleWidget.events.clear()
        yield

    def test_session_delete_soft_deletes(self):
        w = LifecycleWidget(label="a").save(commit=True)
        w_id = w.id

        self.session_scope.delete(w)
        self.session_scope.commit()

        assert LifecycleWidget.get(w_id) is None
        assert LifecycleWidget.get_with_destroyed(w_id) is not None
        assert LifecycleWidget.events == [("before", "a"), ("after", "a")]

    def test_session_delete_respects_before_destroy(self):
        w = LifecycleWidget(label="locked").save(commit=True)
        w_id = w.id

        self.session_scope.delete(w)
        self.session_scope.commit()

        assert LifecycleWidget.get(w_id) is not None
        assert LifecycleWidget.events == [("before", "locked")]


class TestDefaultFilter:
    """默认过滤与绕过"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session_scope = session_scope
        self.live = LifecycleWidget(label="live").save()
        self.gone = LifecycleWidget(label="gone").save(commit=True)
        self.gone.destroy(commit=True)
        yield

    def test_select_filtered(self):
        rows = self.session_scope.execute(select(LifecycleWidget)).scalars().all()
        assert [r.label for r in rows] == ["live"]

    def test_execution_option_bypass(self):
        stmt = select(LifecycleWidget).execution_options(include_destroyed=True)
        rows = self.session_scope.execute(stmt).scalars().all()
        assert sorted(r.label for r in rows) == ["gone", "live"]

    def test_exclusive_scope_bypass(self):
        with exclusive_scope():
            assert LifecycleWidget.count() == 2
        assert LifecycleWidget.count() == 1

    def test_caller_predicates_kept(self):
        with exclusive_scope():
            assert LifecycleWidget.count(label="gone") == 1
        assert LifecycleWidget.count(label="gone") == 0

    def test_bulk_update_skips_destroyed(self):
        self.session_scope.execute(update(LifecycleWidget).values(label="changed"))
        self.session_scope.commit()

        labels = sorted(w.label for w in LifecycleWidget.all_with_destroyed())
        assert labels == ["changed", "gone"]

    def test_destroyed_instance_can_refresh_columns(self):
        """已持有的已删除对象刷新自身列不受过滤影响"""
        self.session_scope.expire(self.gone)
        assert self.gone.label == "gone"
