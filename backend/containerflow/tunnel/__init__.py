"""
Tunnel - SSH session bridging the remote Docker socket and MySQL port
"""

from containerflow.tunnel.manager import TunnelManager, get_tunnel_manager
from containerflow.tunnel.models import SSHConfig, TunnelState

__all__ = ["TunnelManager", "get_tunnel_manager", "SSHConfig", "TunnelState"]
