# app/cache_store.py
"""Redis-backed key/value store with tag sets for group invalidation.

Every cached value may carry tags; a tag is a Redis set holding the keys written
under it, so invalidating a tag deletes whatever was cached for it without the
writer knowing every key in advance. Any Redis failure, timeouts included, is
raised as CacheUnavailable.
"""
from typing import Iterable, Optional, Protocol

import redis

from . import config
from .exceptions import CacheUnavailable


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes, ttl: int, tags: Iterable[str] = ()) -> None:
        ...

    def delete(self, *keys: str) -> int:
        ...

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        ...

    def ping(self) -> bool:
        ...


class RedisCacheStore:
    def __init__(self, client: redis.Redis, prefix: str = config.REDIS_KEY_PREFIX,
                 tag_ttl: int = config.CACHE_TAG_TTL, prune_every: int = config.CACHE_TAG_PRUNE_EVERY):
        self.client = client
        self.prefix = prefix
        self.tag_ttl = tag_ttl
        self.prune_every = prune_every

    @classmethod
    def from_url(cls, url: str = config.REDIS_URL, socket_timeout: float = config.REDIS_SOCKET_TIMEOUT, **kwargs):
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, **kwargs)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self.prefix}tag:{tag}"

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self.client.get(self._key(key))
        except redis.RedisError as e:
            raise CacheUnavailable(f"GET {key}: {e}") from e

    def set(self, key: str, value: bytes, ttl: int, tags: Iterable[str] = ()) -> None:
        full_key = self._key(key)
        tags = list(tags)
        try:
            pipe = self.client.pipeline(transaction=False)
            pipe.setex(full_key, ttl, value)
            for tag in tags:
                tag_key = self._tag_key(tag)
                pipe.sadd(tag_key, full_key)
                pipe.expire(tag_key, max(ttl, self.tag_ttl))
                pipe.scard(tag_key)
            sizes = pipe.execute()[3::3]
        except redis.RedisError as e:
            raise CacheUnavailable(f"SET {key}: {e}") from e
        for tag, size in zip(tags, sizes):
            # entries expire on their own; their names linger in the tag set until pruned
            if size and size % self.prune_every == 0:
                self.prune_tag(tag)

    def prune_tag(self, tag: str) -> int:
        """Drop members of `tag` whose entries have expired or been deleted."""
        tag_key = self._tag_key(tag)
        try:
            members = list(self.client.smembers(tag_key))
            if not members:
                return 0
            pipe = self.client.pipeline(transaction=False)
            for member in members:
                pipe.exists(member)
            dead = [m for m, alive in zip(members, pipe.execute()) if not alive]
            if dead:
                self.client.srem(tag_key, *dead)
        except redis.RedisError as e:
            raise CacheUnavailable(f"prune {tag}: {e}") from e
        return len(dead)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return self.client.delete(*(self._key(k) for k in keys))
        except redis.RedisError as e:
            raise CacheUnavailable(f"DEL {keys}: {e}") from e

    def invalidate_tags(self, tags: Iterable[str]) -> int:
        tag_keys = [self._tag_key(t) for t in tags]
        if not tag_keys:
            return 0
        try:
            members = set()
            for tag_key in tag_keys:
                members.update(self.client.smembers(tag_key))
            return self.client.delete(*members, *tag_keys)
        except redis.RedisError as e:
            raise CacheUnavailable(f"invalidate {tags}: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False
