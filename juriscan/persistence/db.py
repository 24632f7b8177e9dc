from __future__ import annotations
import os
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    create_engine, CheckConstraint, Column, Integer, String, DateTime, Text, JSON, Index, Boolean, text
)
from sqlalchemy.orm import declarative_base, sessionmaker, scoped_session

# --------------------------------------------------------------------
# Configuração
# --------------------------------------------------------------------
DB_PATH = os.getenv("APP_DB_PATH", "data/app.db")
DB_URL = os.getenv("DB_URL", f"sqlite:///{DB_PATH}")


def _make_engine(url: str):
    return create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {},
        future=True,
    )


engine = _make_engine(DB_URL)
SessionLocal = scoped_session(
    sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
)
Base = declarative_base()


def utcnow() -> datetime:
    """UTC sem tzinfo (colunas DateTime do SQLite não guardam fuso)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --------------------------------------------------------------------
# Perfis e plano atual
# --------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, index=True)
    current_plan = Column(String(32), nullable=False, default="free")
    stripe_customer_id = Column(String(64), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# --------------------------------------------------------------------
# Créditos
# --------------------------------------------------------------------
class CreditBalance(Base):
    __tablename__ = "credit_balances"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_credit_balances_non_negative"),)

    user_id = Column(String(64), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(16), nullable=False)       # usage | purchase | subscription | refund | adjustment
    amount = Column(Integer, nullable=False)        # negativo para consumo
    balance_after = Column(Integer, nullable=True)
    description = Column(String(500), nullable=True)
    stripe_payment_id = Column(String(128), nullable=True)
    stripe_subscription_id = Column(String(128), nullable=True)
    reference_id = Column(String(128), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)


Index("ix_credit_transactions_user_created", CreditTransaction.user_id, CreditTransaction.created_at)


# --------------------------------------------------------------------
# Stripe: assinaturas e eventos processados
# --------------------------------------------------------------------
class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    stripe_subscription_id = Column(String(128), unique=True, nullable=False)
    stripe_customer_id = Column(String(128), nullable=True)
    plan_id = Column(String(32), nullable=False, default="free")
    status = Column(String(32), nullable=False)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False)
    credits_granted_for = Column(DateTime, nullable=True)  # início do período já creditado
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class StripeEvent(Base):
    __tablename__ = "stripe_events"

    id = Column(String(128), primary_key=True)
    type = Column(String(64), nullable=False)
    processed_at = Column(DateTime, default=utcnow)


# --------------------------------------------------------------------
# Relatórios
# --------------------------------------------------------------------
class Report(Base):
    __tablename__ = "reports"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(32), nullable=False)
    title = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default="DRAFT")
    parameters = Column(JSON, nullable=True)
    content = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    credits_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    generated_at = Column(DateTime, nullable=True)


# --------------------------------------------------------------------
# Bootstrapping
# --------------------------------------------------------------------
def configure(db_url: str) -> None:
    """Troca o banco em uso (ex.: testes com SQLite temporário)."""
    global engine, DB_URL
    SessionLocal.remove()
    engine.dispose()
    DB_URL = db_url
    engine = _make_engine(db_url)
    SessionLocal.configure(bind=engine)


def init_db() -> None:
    """Cria tabelas caso não existam (uso simples)."""
    if DB_URL.startswith("sqlite"):
        path = engine.url.database
        if path and path != ":memory:":
            folder = os.path.dirname(path)
            if folder:
                os.makedirs(folder, exist_ok=True)
    Base.metadata.create_all(bind=engine)


def ping() -> bool:
    """SELECT 1 para o health check."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return True


@contextmanager
def get_session():
    """Retorna sessão SQLAlchemy (commit ao sair, rollback em erro)."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
