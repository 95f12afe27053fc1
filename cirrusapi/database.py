import asyncpg
import orjson

from cirrusapi.config import (
    PG_HOST, PG_PORT, PG_DATABASE, PG_USER, PG_PASSWORD,
    PG_MIN_CONNECTIONS, PG_MAX_CONNECTIONS, PG_COMMAND_TIMEOUT,
)

pool = None


async def _init_connection(conn):
    # logs and method parameters are stored as jsonb
    await conn.set_type_codec(
        "jsonb",
        encoder=lambda value: orjson.dumps(value).decode(),
        decoder=orjson.loads,
        schema="pg_catalog",
    )


async def init_pool():
    global pool
    pool = await asyncpg.create_pool(
        host=PG_HOST,
        port=PG_PORT,
        database=PG_DATABASE,
        user=PG_USER,
        password=PG_PASSWORD,
        min_size=PG_MIN_CONNECTIONS,
        max_size=PG_MAX_CONNECTIONS,
        command_timeout=PG_COMMAND_TIMEOUT,
        init=_init_connection,
    )
    return pool

async def close_pool():
    global pool
    if pool:
        await pool.close()
        pool = None

async def get_pool():
    global pool
    if pool is None:
        await init_pool()
    return pool
