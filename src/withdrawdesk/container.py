from dependency_injector import containers, providers

from withdrawdesk.config import Settings
from withdrawdesk.db.session import build_engine, build_session_factory
from withdrawdesk.infra.http.rate_limited_client import RateLimitedClient


class Container(containers.DeclarativeContainer):
    wiring_config = containers.WiringConfiguration(modules=["withdrawdesk.api.deps"])

    settings = providers.Singleton(Settings)

    engine = providers.Singleton(
        build_engine,
        database_url=settings.provided.database_url,
        echo=settings.provided.debug,
    )

    session_factory = providers.Singleton(
        build_session_factory,
        engine=engine,
    )

    # One client per process so every run shares the provider rate limit
    rpc_http_client = providers.Singleton(
        RateLimitedClient,
        rate_per_second=settings.provided.rpc_rate_per_second,
        timeout=30.0,
    )
