"""Sidecar run state: run options and result records in SQLite."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, create_engine, desc
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker

from .results.models import RunAccumulator

LOGGER = logging.getLogger(__name__)

STATE_FILE_NAME = "iperf-report.db"


class Base(DeclarativeBase):
    pass


class RunRecord(Base):
    __tablename__ = "runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    failed_servers: Mapped[str] = mapped_column(Text, default="[]")
    options_json: Mapped[str] = mapped_column(Text)
    results: Mapped[List["ResultRecord"]] = relationship(
        back_populates="run", cascade="all, delete-orphan", order_by="ResultRecord.id"
    )


class ResultRecord(Base):
    __tablename__ = "results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("runs.id"), index=True)
    server: Mapped[str] = mapped_column(String(255))
    direction: Mapped[str] = mapped_column(String(8))
    payload_json: Mapped[str] = mapped_column(Text)
    run: Mapped[RunRecord] = relationship(back_populates="results")


def init_db(data_dir: Path) -> sessionmaker:
    db_path = data_dir / STATE_FILE_NAME
    engine = create_engine(f"sqlite:///{db_path}", future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


@contextmanager
def get_session(Session: sessionmaker) -> Iterator:
    session = Session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class StateStore:
    """Persists a finished run so reports can be regenerated without re-testing."""

    def __init__(self, session_factory: sessionmaker):
        self.Session = session_factory

    def save_run(self, options: Mapping[str, Any], accumulator: RunAccumulator) -> int:
        with get_session(self.Session) as session:
            run = RunRecord(
                success_count=accumulator.success_count,
                failed_servers=json.dumps(accumulator.failed),
                options_json=json.dumps(dict(options), default=str),
            )
            for result in accumulator.results:
                run.results.append(
                    ResultRecord(
                        server=result.iperf_server,
                        direction=result.direction.value,
                        payload_json=json.dumps(result.to_dict()),
                    )
                )
            session.add(run)
            session.flush()
            LOGGER.info(
                "Stored run %d with %d results (%d servers succeeded, %d failed)",
                run.id,
                len(accumulator.results),
                accumulator.success_count,
                len(accumulator.failed),
            )
            return run.id

    def latest_run_id(self) -> Optional[int]:
        with get_session(self.Session) as session:
            run = session.query(RunRecord).order_by(desc(RunRecord.id)).first()
            return run.id if run else None

    def load_rows(self, run_id: Optional[int] = None) -> Optional[List[Dict[str, Any]]]:
        """Rows of scalar run options merged with each result, or None if nothing was stored."""
        with get_session(self.Session) as session:
            query = session.query(RunRecord)
            if run_id is None:
                run = query.order_by(desc(RunRecord.id)).first()
            else:
                run = query.filter(RunRecord.id == run_id).first()
            if run is None or not run.results:
                return None

            options = json.loads(run.options_json)
            base = {key: value for key, value in options.items() if not isinstance(value, (list, dict))}
            rows = []
            for record in run.results:
                row = dict(base)
                row.update(json.loads(record.payload_json))
                rows.append(row)
            return rows
