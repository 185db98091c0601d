from sqlalchemy import Column, DateTime, Float, Integer, String

from .database import Base


class PriceHistory(Base):
    """
    PriceHistory model for the append-only BTC/AZE price series
    """
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    timestamp = Column(DateTime, nullable=False, index=True)

    # Source prices
    btc_brl = Column(Float, nullable=False)
    btc_usd = Column(Float, nullable=False)
    usd_brl = Column(Float, nullable=False)

    # Derived prices (btc / divisor)
    aze_brl = Column(Float, nullable=False)
    aze_usd = Column(Float, nullable=False)

    origin = Column(String(20), nullable=False)  # 'external' or 'fallback'

    def __repr__(self):
        return f"<PriceHistory(id={self.id}, timestamp='{self.timestamp}', aze_brl={self.aze_brl}, origin='{self.origin}')>"
