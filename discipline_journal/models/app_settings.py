"""应用设置：总资金、单笔风险比例（单行表，id 固定为 1）"""
from sqlalchemy import Column, DateTime, Integer, Numeric

from discipline_journal.models.db import Base, utcnow

SETTINGS_ID = 1


class AppSettings(Base):
    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ID)
    total_capital = Column(Numeric(20, 4, asdecimal=True), nullable=False)
    risk_percent = Column(Numeric(10, 6, asdecimal=True), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
