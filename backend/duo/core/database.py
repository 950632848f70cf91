"""
数据库配置
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from duo.core.config import settings
from duo.core.logging_setup import get_logger

logger = get_logger(__name__)

def _connect_args(url: str) -> dict:
    # SQLite连接会被FastAPI的线程池复用
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    echo=settings.DATABASE_ECHO
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db(bind=None):
    """初始化数据库（创建所有表）"""
    # 导入所有模型，确保注册到Base.metadata
    from duo.models.decision import Decision
    from duo.models.decision_option import DecisionOption
    from duo.models.vote import Vote

    Base.metadata.create_all(bind=bind or engine)
    logger.info("✅ 数据库初始化完成")
