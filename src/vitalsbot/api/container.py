"""Composition root: builds the object graph shared by all requests."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from vitalsbot.config import Settings, get_settings
from vitalsbot.domain.authorization import AuthorizationService
from vitalsbot.domain.dispatcher import ConversationDispatcher
from vitalsbot.domain.session_resolver import SessionResolver
from vitalsbot.google.credential_store import CredentialStore
from vitalsbot.google.oauth_registry import OAuthClientRegistry
from vitalsbot.whatsapp.meta_sender import MetaSender


@dataclass
class Services:
    settings: Settings
    registry: OAuthClientRegistry
    store: CredentialStore
    gateway: MetaSender
    resolver: SessionResolver
    dispatcher: ConversationDispatcher
    authorization: AuthorizationService


def build_services(settings: Settings | None = None) -> Services:
    """Wire one registry, store and gateway into every component."""
    settings = settings or get_settings()
    registry = OAuthClientRegistry(settings)
    store = CredentialStore(settings)
    gateway = MetaSender(settings)
    resolver = SessionResolver(registry, store)
    return Services(
        settings=settings,
        registry=registry,
        store=store,
        gateway=gateway,
        resolver=resolver,
        dispatcher=ConversationDispatcher(settings, resolver, registry, store, gateway),
        authorization=AuthorizationService(settings, registry, store, gateway),
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the app's services."""
    return request.app.state.services
