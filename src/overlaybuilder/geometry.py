"""Country geometry decomposition into independently clipped rings."""

from __future__ import annotations

from typing import Any, Mapping

from .errors import UnsupportedGeometry
from .models import CountryPolygon, MultiPolygonGeometry, PolygonGeometry, Ring


def decompose(country: CountryPolygon) -> tuple[Ring, ...]:
    """Split a country into its outer rings, in source order.

    A Polygon yields its outer ring only. A MultiPolygon yields one ring per
    member, tagged with the member index so artifact keys stay unique.
    """
    geometry = country.geometry
    if isinstance(geometry, PolygonGeometry):
        return (Ring(admin=country.admin, index=0, points=geometry.outer),)
    if isinstance(geometry, MultiPolygonGeometry):
        return tuple(
            Ring(admin=country.admin, index=idx, points=rings[0])
            for idx, rings in enumerate(geometry.polygons)
        )
    raise UnsupportedGeometry(
        f"Unsupported geometry for {country.admin}: {type(geometry).__name__}"
    )


def decompose_feature(feature: Mapping[str, Any], *, admin_field: str = "admin") -> tuple[Ring, ...]:
    return decompose(CountryPolygon.from_feature(feature, admin_field=admin_field))
