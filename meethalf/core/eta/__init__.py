# meethalf/core/eta/__init__.py
"""
Периодический опрос ETA участников.
"""

from meethalf.core.eta.poller import EtaPoller, is_network_unreachable

__all__ = [
    "EtaPoller",
    "is_network_unreachable",
]
