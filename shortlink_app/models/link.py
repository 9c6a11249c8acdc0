from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from shortlink_app.database.connection import Base


class Link(Base):
    """
    One short link.

    The unique index on code is the authoritative guard against two
    allocators picking the same code concurrently.
    """
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Note: unique=True automatically creates an index
    code = Column(String(20), unique=True, nullable=False, index=True)
    target_url = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    click_count = Column(Integer, nullable=False, default=0)

    clicks = relationship(
        "Click",
        back_populates="link",
        order_by="Click.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Click(Base):
    """A click event; id order is chronological append order"""
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    link_id = Column(Integer, ForeignKey("links.id", ondelete="CASCADE"), nullable=False, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    ip = Column(String(64), nullable=False)
    referrer = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    country = Column(String(8), nullable=True)

    link = relationship("Link", back_populates="clicks")
