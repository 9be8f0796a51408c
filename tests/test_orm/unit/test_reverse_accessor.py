"""反向关联访问器测试"""

import pytest
from sqlalchemy import ForeignKey, Integer
from sqlalchemy.orm import Mapped, configure_mappers, mapped_column, relationship

from yparanoid.orm import BaseModel
from yparanoid.orm.paranoid import (
    ParanoidConfigurationError,
    install_reverse_accessor,
    install_reverse_accessors,
)


# ==================== 测试模型定义 ====================

class RaInvoice(BaseModel):
    __tablename__ = "ra_invoice"

    lines = relationship("RaLine", back_populates="invoice")
    memos = relationship("RaMemo", back_populates="invoice")
    stamps = relationship("RaStamp")


class RaLine(BaseModel):
    __tablename__ = "ra_line"

    invoice_id: Mapped[int] = mapped_column(Integer, ForeignKey("ra_invoice.id"), nullable=True)
    invoice = relationship("RaInvoice", back_populates="lines")


class RaMemo(BaseModel):
    __tablename__ = "ra_memo"

    invoice_id: Mapped[int] = mapped_column(Integer, ForeignKey("ra_invoice.id"), nullable=True)
    invoice = relationship("RaInvoice", back_populates="memos")

    def invoice_with_destroyed(self):
        return "custom"


class RaStamp(BaseModel):
    """没有配对的多对一关系"""
    __tablename__ = "ra_stamp"

    invoice_id: Mapped[int] = mapped_column(Integer, ForeignKey("ra_invoice.id"), nullable=True)


# ==================== 测试类 ====================

class TestInstallation:
    """访问器安装"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        configure_mappers()
        yield

    def test_installed_on_child(self):
        assert callable(getattr(RaLine, "invoice_with_destroyed", None))

    def test_user_defined_attribute_kept(self):
        assert RaMemo().invoice_with_destroyed() == "custom"

    def test_explicit_install_idempotent(self):
        assert install_reverse_accessor(RaInvoice, "lines") == "invoice_with_destroyed"
        accessor = RaLine.invoice_with_destroyed
        assert install_reverse_accessor(RaInvoice, "lines") == "invoice_with_destroyed"
        assert RaLine.invoice_with_destroyed is accessor

    def test_install_all(self):
        assert sorted(install_reverse_accessors(RaInvoice)) == ["invoice_with_destroyed", "invoice_with_destroyed"]

    def test_unknown_relationship(self):
        with pytest.raises(ParanoidConfigurationError):
            install_reverse_accessor(RaInvoice, "nothing")

    def test_relationship_without_reciprocal(self):
        with pytest.raises(ParanoidConfigurationError):
            install_reverse_accessor(RaInvoice, "stamps")

    def test_many_to_one_side_rejected(self):
        with pytest.raises(ParanoidConfigurationError):
            install_reverse_accessor(RaLine, "invoice")


class TestAccess:
    """通过访问器读取已删除的父记录"""

    @pytest.fixture(autouse=True)
    def setup_db(self, session_scope):
        self.session = session_scope
        invoice = RaInvoice(name="inv")
        invoice.lines.append(RaLine(name="l1"))
        invoice.save(commit=True)
        self.invoice_id = invoice.id
        yield

    def test_live_parent(self):
        line = RaLine.first(name="l1")
        assert line.invoice_with_destroyed().id == self.invoice_id

    def test_destroyed_parent(self):
        RaInvoice.get(self.invoice_id).destroy_without_callbacks()
        self.session.commit()
        self.session.expunge_all()

        line = RaLine.first(name="l1")
        assert line.invoice is None
        assert line.invoice_with_destroyed().id == self.invoice_id

    def test_null_foreign_key(self):
        orphan = RaLine(name="orphan").save(commit=True)
        assert orphan.invoice_with_destroyed() is None
