"""
RPGF Core - Retroactive Public Goods Funding rounds

Round phase resolution, attestation verification, ballot validation
and results tallying for RetroPGF rounds.
"""

__version__ = "1.0.0"

from rpgf.config import settings

__all__ = ["settings", "__version__"]
