"""Connection lifecycle: the remote client collaborator and the state machine."""

from tether.connection.client import HttpRemoteClient, RemoteClient
from tether.connection.state_machine import ConnectionStateMachine

__all__ = ["ConnectionStateMachine", "HttpRemoteClient", "RemoteClient"]
