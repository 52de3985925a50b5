# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Generic key value cache with absolute expiry.

A value is returned only as long as its expiry lies in the future, regardless whether the
storage reclaimed the entry already. Storage failures are raised as `CacheUnavailable`,
which callers treat as a cache miss and never as a negative entry.

Two storage backends exist:
 - `DatabaseExpiringCache` persisting into the `expiring_cache` table (default)
 - `RedisExpiringCache` delegating expiry to redis, or fakeredis if no redis url is configured

Similar to a service layer, a `CacheNamespace` manages all entries of one kind, e.g. the
namespace 'issuer_key_set' manages all entries saved with the key 'issuer_key_set:{id}'.
"""

import abc
import datetime
import logging

import fakeredis
import redis
import redis.exceptions
import sqlalchemy.exc
from sqlalchemy import select, update, delete
from sqlalchemy.orm import sessionmaker

from shc_verifier.config import VerifierConfig, CacheBackend
from shc_verifier.db.models import ExpiringCacheEntry, utc_now
from shc_verifier.exception import CacheUnavailable

_logger = logging.getLogger(__name__)


class ExpiringCache(abc.ABC):
    @abc.abstractmethod
    def get(self, key: str) -> str | None:
        """Returns the live value stored under the key, None if absent or expired."""

    @abc.abstractmethod
    def put(self, key: str, value: str, ttl: float) -> None:
        """Stores the value until now + ttl seconds, replacing any existing entry of the key."""

    @abc.abstractmethod
    def remove(self, key: str) -> None:
        pass

    @abc.abstractmethod
    def evict_expired(self) -> int:
        """Reclaims the storage of expired entries. Returns the number of removed entries."""

    @abc.abstractmethod
    def ping(self) -> bool:
        """True if the storage backend can be reached."""

    def close(self) -> None:
        pass


class DatabaseExpiringCache(ExpiringCache):
    """Cache on the `expiring_cache` table, keeping exactly one row per key."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        try:
            with self._session_factory() as session:
                return session.execute(
                    select(ExpiringCacheEntry.value).where(
                        ExpiringCacheEntry.key == key,
                        ExpiringCacheEntry.expires_at > utc_now(),
                    )
                ).scalar_one_or_none()
        except sqlalchemy.exc.SQLAlchemyError as e:
            raise CacheUnavailable(identifier=key, additional_error_description=str(e)) from e

    def _write(self, key: str, value: str, expires_at: datetime.datetime) -> None:
        with self._session_factory() as session, session.begin():
            updated = session.execute(update(ExpiringCacheEntry).where(ExpiringCacheEntry.key == key).values(value=value, expires_at=expires_at))
            if not updated.rowcount:
                session.add(ExpiringCacheEntry(key=key, value=value, expires_at=expires_at))

    def put(self, key: str, value: str, ttl: float) -> None:
        expires_at = utc_now() + datetime.timedelta(seconds=ttl)
        try:
            try:
                self._write(key, value, expires_at)
            except sqlalchemy.exc.IntegrityError:
                # A concurrent writer inserted the key first, the last write wins
                _logger.debug(f"Concurrent insert of cache entry {key=}, overwriting")
                self._write(key, value, expires_at)
        except sqlalchemy.exc.SQLAlchemyError as e:
            raise CacheUnavailable(identifier=key, additional_error_description=str(e)) from e

    def remove(self, key: str) -> None:
        try:
            with self._session_factory() as session, session.begin():
                session.execute(delete(ExpiringCacheEntry).where(ExpiringCacheEntry.key == key))
        except sqlalchemy.exc.SQLAlchemyError as e:
            raise CacheUnavailable(identifier=key, additional_error_description=str(e)) from e

    def evict_expired(self) -> int:
        try:
            with self._session_factory() as session, session.begin():
                return session.execute(delete(ExpiringCacheEntry).where(ExpiringCacheEntry.expires_at <= utc_now())).rowcount
        except sqlalchemy.exc.SQLAlchemyError as e:
            raise CacheUnavailable(additional_error_description=str(e)) from e

    def ping(self) -> bool:
        try:
            with self._session_factory() as session:
                session.execute(select(ExpiringCacheEntry.key).limit(1))
            return True
        except sqlalchemy.exc.SQLAlchemyError:
            _logger.exception("Expiring cache table not reachable")
            return False


class RedisExpiringCache(ExpiringCache):
    """Cache on redis, expiry is handled by redis itself, see https://redis.io/commands/pexpireat/"""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(identifier=key, additional_error_description=str(e)) from e

    def put(self, key: str, value: str, ttl: float) -> None:
        expires_at = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=ttl)
        try:
            # Value and expiry are written in one transaction
            with self._client.pipeline() as pipe:
                pipe.set(key, value)
                pipe.pexpireat(key, int(expires_at.timestamp() * 1000))
                pipe.execute()
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(identifier=key, additional_error_description=str(e)) from e

    def remove(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.exceptions.RedisError as e:
            raise CacheUnavailable(identifier=key, additional_error_description=str(e)) from e

    def evict_expired(self) -> int:
        # Redis reclaims expired keys on its own
        return 0

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.exceptions.RedisError:
            _logger.exception("Redis not reachable")
            return False

    def close(self) -> None:
        self._client.close()


class CacheNamespace:
    """Access to the entries of one kind, stored with the key '{cache_namespace}:{id}'."""

    def __init__(self, cache: ExpiringCache, cache_namespace: str) -> None:
        self.cache = cache
        self.cache_namespace = cache_namespace

    def _get_key(self, id: str | int) -> str:
        return f'{self.cache_namespace}:{id}'

    def get(self, id: str | int) -> str | None:
        return self.cache.get(self._get_key(id))

    def put(self, id: str | int, value: str, ttl: float) -> None:
        self.cache.put(self._get_key(id), value, ttl)

    def remove(self, id: str | int) -> None:
        self.cache.remove(self._get_key(id))


def create_cache(config: VerifierConfig, session_factory: sessionmaker) -> ExpiringCache:
    """Creates the cache for the configured backend."""
    if config.cache_backend == CacheBackend.redis:
        if config.redis_url:
            _logger.info("Using redis expiring cache")
            return RedisExpiringCache(redis.Redis.from_url(config.redis_url, decode_responses=True))
        _logger.warning("No REDIS_URL configured, using in process fakeredis as expiring cache")
        return RedisExpiringCache(fakeredis.FakeStrictRedis(version=6, decode_responses=True))
    if config.cache_backend != CacheBackend.database:
        raise ValueError(f"Unsupported cache backend {config.cache_backend}")
    return DatabaseExpiringCache(session_factory)
