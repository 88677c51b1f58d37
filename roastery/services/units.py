"""
Table de conversion paquets -> kg.

Seule définition des poids : le moteur de commandes, le ledger, les alertes
et les rapports passent tous par ici.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Mapping

from roastery.app.db.models.core_types import PackageClass, PackageType
from roastery.services.errors import ValidationError

PACKAGE_WEIGHTS_KG: dict[PackageType, Decimal] = {
    PackageType.small_espresso: Decimal("0.20"),
    PackageType.small_filter: Decimal("0.20"),
    PackageType.medium_espresso: Decimal("0.50"),
    PackageType.medium_filter: Decimal("0.50"),
    PackageType.large: Decimal("1.00"),
}

# espresso / filtre : même poids, le split est opérationnel
PACKAGE_CLASSES: dict[PackageClass, tuple[PackageType, ...]] = {
    PackageClass.small: (PackageType.small_espresso, PackageType.small_filter),
    PackageClass.medium: (PackageType.medium_espresso, PackageType.medium_filter),
    PackageClass.large: (PackageType.large,),
}


def weight_of(package_type: PackageType | str) -> Decimal:
    try:
        return PACKAGE_WEIGHTS_KG[PackageType(package_type)]
    except ValueError:
        raise ValidationError(f"Unknown package type: {package_type!r}") from None


def total_weight(counts: Mapping[PackageType, int]) -> Decimal:
    """Σ counts[p] * weight_of(p). Compteurs négatifs refusés."""
    total = Decimal("0")
    for ptype, count in counts.items():
        if count < 0:
            raise ValidationError(f"Negative count for {PackageType(ptype).value}: {count}")
        total += weight_of(ptype) * count
    return total


def class_totals(counts: Mapping[PackageType, int]) -> dict[PackageClass, int]:
    return {
        pclass: sum(int(counts.get(ptype, 0)) for ptype in members)
        for pclass, members in PACKAGE_CLASSES.items()
    }
