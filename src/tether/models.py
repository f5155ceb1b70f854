"""Canonical Pydantic models and enums shared across tether modules.

**Configuration models** -- serialised as JSON in the user's config
directory: :class:`CallbackConfig`, :class:`ConnectionConfig`,
:class:`OutputConfig`, and the root :class:`TetherConfig`.

**State enums** -- :class:`ConnectionStatus` is the tri-state reported by a
remote client; :class:`LifecycleState` is the state machine's own view of
the connection lifecycle.

All models use Pydantic v2.
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field


# --- State enums ---


class ConnectionStatus(str, enum.Enum):
    """Status of the remote connection as reported by the client."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class LifecycleState(str, enum.Enum):
    """State of :class:`~tether.connection.ConnectionStateMachine`.

    ``UNINITIALIZED`` before the first attempt; ``CONNECTING`` while the
    handshake runs or the client is reconnecting; ``UNAUTHENTICATED`` after
    a missing credential or a failed handshake; ``STOPPED`` once the owning
    lifetime ended.
    """

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UNAUTHENTICATED = "unauthenticated"
    STOPPED = "stopped"


# --- Config ---


class CallbackConfig(BaseModel):
    """Local auth callback listener settings."""

    host: str = Field(default="127.0.0.1", description="Interface the listener binds")
    public_host: str = Field(
        default="localhost", description="Host name used in the browser return URL"
    )
    port: int = Field(
        default=8080, ge=0, le=65535, description="Listener port (0 picks a free port)"
    )
    path: str = Field(default="/auth", description="Route receiving the token")
    token_parameter: str = Field(default="token", description="Query parameter carrying the token")
    shutdown_grace: float = Field(
        default=0.1, ge=0, description="Seconds in-flight requests get to drain on stop"
    )
    shutdown_timeout: float = Field(
        default=5.0, ge=0, description="Seconds to wait for the listener thread to exit"
    )


class ConnectionConfig(BaseModel):
    """Connect attempt and heartbeat settings."""

    connect_delay: float = Field(
        default=0.1, ge=0, description="Seconds between enabling and the connect attempt"
    )
    handshake_path: str = Field(
        default="/api/session", description="Path probed to verify the session"
    )
    heartbeat_interval: float = Field(
        default=10.0, gt=0, description="Seconds between liveness checks"
    )
    max_backoff: float = Field(
        default=60.0, gt=0, description="Upper bound for the reconnect delay"
    )
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    reconnect: bool = Field(default=True, description="Keep reconnecting after a lost connection")


class OutputConfig(BaseModel):
    """Default output format preferences."""

    format: str = Field(default="auto", description="Output format: auto, json, plain, rich")


class TetherConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/tether/config.json``.

    Loaded and saved by :func:`~tether.config.load_config` and
    :func:`~tether.config.save_config`. See
    :func:`~tether.config.resolve_config` for the precedence chain.
    """

    endpoint: str = Field(
        default="http://localhost:8000", description="Base URL of the remote service"
    )
    login_path: str = Field(default="/login", description="Sign-in page below the endpoint")
    return_parameter: str = Field(
        default="returnTo", description="Query parameter carrying the callback URL"
    )
    profile: str = Field(default="default", description="Credential store profile name")
    enabled: bool = Field(default=True, description="Whether the integration starts enabled")
    callback: CallbackConfig = Field(default_factory=CallbackConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
