"""
持久化访问层

对decisions / decision_options / votes三张表提供统一的增删改查，
所有SQLAlchemy异常统一转换为StorageError。
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from duo.core.exceptions import StorageError
from duo.core.logging_setup import get_logger
from duo.models.decision import Decision
from duo.models.decision_option import DecisionOption
from duo.models.vote import Vote

logger = get_logger(__name__)

TABLES = {
    "decisions": Decision,
    "decision_options": DecisionOption,
    "votes": Vote,
}

OrderSpec = Union[str, Sequence[str], None]


class DecisionStore:
    """决策数据存储"""

    def __init__(self, db: Session):
        self.db = db
        self._transaction_depth = 0

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def find(self, table: str, filters: Optional[Dict[str, Any]] = None,
             order: OrderSpec = None, limit: Optional[int] = None) -> List[Any]:
        """按条件查询多行"""
        try:
            query = self._filtered(table, filters)
            for clause in self._order_clauses(table, order):
                query = query.order_by(clause)
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except SQLAlchemyError as e:
            self._fail(f"查询{table}失败", e)

    def find_one(self, table: str, filters: Dict[str, Any]) -> Optional[Any]:
        """按条件查询单行，不存在返回None"""
        try:
            return self._filtered(table, filters).first()
        except SQLAlchemyError as e:
            self._fail(f"查询{table}失败", e)

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    def insert(self, table: str, rows: Union[Dict[str, Any], List[Dict[str, Any]]]):
        """插入一行或多行，返回ORM对象（列表输入返回列表）"""
        model = TABLES[table]
        many = isinstance(rows, list)
        objects = [model(**row) for row in (rows if many else [rows])]
        try:
            self.db.add_all(objects)
            self._flush_or_commit()
            for obj in objects:
                self.db.refresh(obj)
        except SQLAlchemyError as e:
            self._fail(f"插入{table}失败", e)
        return objects if many else objects[0]

    def update(self, table: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> Optional[Any]:
        """按条件更新，返回被更新的第一行（按主键）；没有匹配行时返回None

        通过RETURNING拿到实际被更新的主键，不会误返回未被更新的行。
        """
        model = TABLES[table]
        stmt = (
            update(model)
            .where(*self._conditions(table, filters))
            .values(**patch)
            .returning(model.id)
            .execution_options(synchronize_session=False)
        )
        try:
            updated_ids = sorted(self.db.execute(stmt).scalars().all())
            self._flush_or_commit()
            if not updated_ids:
                return None
            self.db.expire_all()
            return self.db.query(model).filter(model.id == updated_ids[0]).first()
        except SQLAlchemyError as e:
            self._fail(f"更新{table}失败", e)

    def delete(self, table: str, filters: Dict[str, Any]) -> int:
        """按条件删除，返回删除行数"""
        try:
            deleted = self._filtered(table, filters).delete(synchronize_session=False)
            self._flush_or_commit()
            self.db.expire_all()
            return deleted
        except SQLAlchemyError as e:
            self._fail(f"删除{table}失败", e)

    def upsert(self, table: str, row: Dict[str, Any], conflict_keys: Sequence[str],
               update_keys: Sequence[str]) -> Any:
        """单条语句完成"插入或在唯一键冲突时更新"，避免先查后写的竞态"""
        model = TABLES[table]
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise StorageError(f"不支持的数据库方言: {dialect}")

        stmt = insert(model.__table__).values(**row)
        set_ = {key: stmt.excluded[key] for key in update_keys}
        if "updated_at" in model.__table__.c:
            set_["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=list(conflict_keys), set_=set_)

        try:
            self.db.execute(stmt)
            self._flush_or_commit()
            self.db.expire_all()
            return self._filtered(table, {key: row[key] for key in conflict_keys}).one()
        except SQLAlchemyError as e:
            self._fail(f"写入{table}失败", e)

    @contextmanager
    def transaction(self) -> Iterator["DecisionStore"]:
        """把多个写操作合并为一次提交，任何异常都会整体回滚"""
        self._transaction_depth += 1
        try:
            yield self
            if self._transaction_depth == 1:
                self.db.commit()
        except SQLAlchemyError as e:
            self._fail("事务提交失败", e)
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._transaction_depth -= 1

    # ------------------------------------------------------------------
    # 内部方法
    # ------------------------------------------------------------------

    def _conditions(self, table: str, filters: Optional[Dict[str, Any]]) -> list:
        model = TABLES[table]
        conditions = []
        for column, value in (filters or {}).items():
            attr = getattr(model, column)
            if isinstance(value, (list, tuple, set)):
                conditions.append(attr.in_(list(value)))
            elif value is None:
                conditions.append(attr.is_(None))
            else:
                conditions.append(attr == value)
        return conditions

    def _filtered(self, table: str, filters: Optional[Dict[str, Any]]):
        return self.db.query(TABLES[table]).filter(*self._conditions(table, filters))

    def _order_clauses(self, table: str, order: OrderSpec):
        model = TABLES[table]
        if not order:
            return []
        if isinstance(order, str):
            order = [order]
        clauses = []
        for spec in order:
            if spec.startswith("-"):
                clauses.append(getattr(model, spec[1:]).desc())
            else:
                clauses.append(getattr(model, spec).asc())
        return clauses

    def _flush_or_commit(self):
        if self._transaction_depth:
            self.db.flush()
        else:
            self.db.commit()

    def _fail(self, message: str, error: Exception):
        self.db.rollback()
        logger.error(f"❌ {message}: {error}")
        raise StorageError(f"{message}: {error}") from error
