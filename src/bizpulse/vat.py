# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Gross/net (VAT) conversion for BizPulse.

All amounts handled by the engine are in Israeli shekels (ILS). ClickUp
currency fields are treated as gross amounts (VAT included). Every money
metric goes through :func:`ensure_net_gross` exactly once before it is
reported, so that the gross and net sides are always consistent.
"""

from dataclasses import dataclass, field
from typing import Optional

VAT_RATE = 0.18


@dataclass(frozen=True)
class NetGross:
    """A gross/net pair with the notes explaining how it was completed."""

    gross_ils: Optional[float]
    net_ils: Optional[float]
    notes: tuple[str, ...] = field(default_factory=tuple)


def gross_to_net(gross_ils: float) -> float:
    return gross_ils / (1 + VAT_RATE)


def net_to_gross(net_ils: float) -> float:
    return net_ils * (1 + VAT_RATE)


def ensure_net_gross(
    gross_ils: Optional[float] = None,
    net_ils: Optional[float] = None,
) -> NetGross:
    """
    Fill in the missing side of a gross/net pair using the fixed VAT rate.

    - both missing  -> both None, with a "No amount available" note,
    - both present  -> passed through unchanged,
    - one missing   -> derived from the other, with a note naming the
      derived side.
    """
    if gross_ils is None and net_ils is None:
        return NetGross(None, None, ("No amount available",))

    if gross_ils is not None and net_ils is not None:
        return NetGross(gross_ils, net_ils)

    if net_ils is None:
        return NetGross(
            gross_ils,
            gross_to_net(gross_ils),
            ("Net computed from gross using VAT 18%",),
        )
    else:
        return NetGross(
            net_to_gross(net_ils),
            net_ils,
            ("Gross computed from net using VAT 18%",),
        )
