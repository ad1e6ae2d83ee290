import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import create_engine, Column, Integer, String, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker, Session

import config
from models import StaffSession

logger = logging.getLogger(__name__)

DATABASE_URL: str = config.config.DATABASE_URL

engine = create_engine(DATABASE_URL,
                       connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {})
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


class StaffAccount(Base):
    """Связка Telegram-аккаунта с сотрудником планировщика"""
    __tablename__ = 'staff_accounts'

    id = Column(Integer, primary_key=True)
    telegram_id = Column(Integer, unique=True, nullable=False)
    staff_id = Column(Integer, nullable=False)
    display_name = Column(String, nullable=False)
    category = Column(String, nullable=True)  # doctor / dietitian

    # Токен выдается внешним входом через портал
    api_token = Column(String, nullable=True)
    linked_at = Column(DateTime, default=datetime.utcnow)

    def to_session(self) -> StaffSession:
        return StaffSession(
            staff_id=self.staff_id,
            display_name=self.display_name,
            category=self.category,
            api_token=self.api_token,
        )


def init_db() -> None:
    """Создает таблицы"""
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")


def get_db():
    """Создает сессию базы данных"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def fetch_staff_session(db: Session, telegram_id: int) -> Optional[StaffSession]:
    """Сессия сотрудника или None, если он еще не входил через портал"""
    account = db.query(StaffAccount).filter(StaffAccount.telegram_id == telegram_id).first()
    if not account:
        return None
    return account.to_session()


def save_staff_session(db: Session, telegram_id: int, session: StaffSession) -> StaffAccount:
    """Сохраняет или обновляет связку после входа"""
    account = db.query(StaffAccount).filter(StaffAccount.telegram_id == telegram_id).first()
    if account is None:
        account = StaffAccount(telegram_id=telegram_id)
        db.add(account)

    account.staff_id = session.staff_id
    account.display_name = session.display_name
    account.category = session.category
    account.api_token = session.api_token
    account.linked_at = datetime.utcnow()

    db.commit()
    db.refresh(account)
    return account


def delete_staff_session(db: Session, telegram_id: int) -> bool:
    """Удаляет связку (токен отозван сервером)"""
    account = db.query(StaffAccount).filter(StaffAccount.telegram_id == telegram_id).first()
    if not account:
        return False
    db.delete(account)
    db.commit()
    return True
