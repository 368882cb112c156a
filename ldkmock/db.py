# Copyright (C) 2018 inbitcoin s.r.l.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

""" The module which handles ldk-mock's snapshot database """

from contextlib import contextmanager
from logging import getLogger
from pathlib import Path
from time import time

from sqlalchemy import create_engine, Column, Integer, LargeBinary
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from . import settings as sett
from .errors import Err

LOGGER = getLogger(__name__)


def _get_db_url(new_db):
    """
    Constructs the DB's URL for SQLAlchemy.
    It fails when DB is missing and creation has not been requested.
    """
    db_relpath = Path(sett.DB_DIR).joinpath(sett.DB_NAME)
    if not db_relpath.exists():
        if not new_db:
            raise RuntimeError('Your database is missing')
        db_relpath.parent.mkdir(parents=True, exist_ok=True)
        db_relpath.touch()
    return 'sqlite:///{}'.format(db_relpath.resolve())


Base = declarative_base()
ENGINE = None
Session = None


def init_db(new_db=False):
    """ Initialize DB connection, creating missing tables if requested """
    global ENGINE  # pylint: disable=global-statement
    global Session  # pylint: disable=global-statement
    ENGINE = create_engine(_get_db_url(new_db))
    Session = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False)
    if new_db:
        Base.metadata.create_all(ENGINE)


@contextmanager
def session_scope():
    """ Provides a transactional scope around a series of operations """
    session = Session()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as err:
        session.rollback()
        LOGGER.debug('Database error: %s', err)
        Err().db_error()
    except Exception as exc:
        session.rollback()
        raise exc
    finally:
        session.close()


def save_snapshot_to_db(session, data, scrypt_params=None):
    """
    Saves a ledger snapshot in database.
    scrypt_params is set only when data is encrypted.
    Only the latest DB_SNAPSHOTS_KEPT snapshots are kept.
    """
    session.add(Snapshot(
        created_at=int(time()), data=data, scrypt_params=scrypt_params))
    session.flush()
    oldest_kept = session.query(Snapshot.id) \
        .order_by(Snapshot.id.desc()) \
        .offset(sett.DB_SNAPSHOTS_KEPT - 1).limit(1).scalar()
    if oldest_kept is not None:
        session.query(Snapshot).filter(Snapshot.id < oldest_kept) \
            .delete(synchronize_session=False)


def get_latest_snapshot_from_db(session):
    """ Gets the most recent ledger snapshot from database """
    snapshot = session.query(Snapshot).order_by(Snapshot.id.desc()).first()
    if not snapshot:
        return None, None
    return snapshot.data, snapshot.scrypt_params


class Snapshot(Base):  # pylint: disable=too-few-public-methods
    """ Class that maps the table containing the ledger snapshots """

    __tablename__ = 'snapshots'

    id = Column(Integer, primary_key=True, autoincrement=True)
    created_at = Column(Integer)
    data = Column(LargeBinary)
    scrypt_params = Column(LargeBinary)

    def __repr__(self):
        return ('<Snapshot(id="{}", created_at="{}", data="{}", ' +
                'scrypt_params="{}")>').format(
                    self.id, self.created_at, self.data, self.scrypt_params)
