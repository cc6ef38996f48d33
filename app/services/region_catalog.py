"""
Hong Kong Region Catalog

Static geometry for the stylized census map: the 18 District Council
districts and the Tertiary Planning Units (TPUs) they are subdivided into.

TPU outlines are approximations drawn in a 300x300 view box. They are only
meant to give the stylized renderer visual granularity; the geo-accurate
renderer uses the official TPU boundary GeoJSON instead.
"""
import re
from typing import Optional
from pydantic import BaseModel


class District(BaseModel):
    """A top-level administrative district (parent region)."""
    code: str
    name: str
    area: str

    model_config = {"frozen": True}


class RegionRecord(BaseModel):
    """A sub-region (TPU) of a district."""
    id: str
    parent_id: Optional[str] = None
    name: str
    path: Optional[str] = None  # SVG path in the 300x300 view box

    model_config = {"frozen": True}


# =============================================================================
# Districts (canonical order)
# =============================================================================

DISTRICTS: tuple[District, ...] = (
    # Hong Kong Island
    District(code="CW", name="Central and Western", area="Hong Kong Island"),
    District(code="WC", name="Wan Chai", area="Hong Kong Island"),
    District(code="E", name="Eastern", area="Hong Kong Island"),
    District(code="S", name="Southern", area="Hong Kong Island"),
    # Kowloon
    District(code="YTM", name="Yau Tsim Mong", area="Kowloon"),
    District(code="SSP", name="Sham Shui Po", area="Kowloon"),
    District(code="KC", name="Kowloon City", area="Kowloon"),
    District(code="WTS", name="Wong Tai Sin", area="Kowloon"),
    District(code="KT", name="Kwun Tong", area="Kowloon"),
    # New Territories
    District(code="TW", name="Tsuen Wan", area="New Territories"),
    District(code="TM", name="Tuen Mun", area="New Territories"),
    District(code="YL", name="Yuen Long", area="New Territories"),
    District(code="N", name="North", area="New Territories"),
    District(code="TP", name="Tai Po", area="New Territories"),
    District(code="ST", name="Sha Tin", area="New Territories"),
    District(code="SK", name="Sai Kung", area="New Territories"),
    District(code="K", name="Kwai Tsing", area="New Territories"),
    District(code="I", name="Islands", area="New Territories"),
)

DISTRICT_CODES: tuple[str, ...] = tuple(d.code for d in DISTRICTS)

DEFAULT_REGION_LABEL = "Central"


# =============================================================================
# Tertiary Planning Units
# =============================================================================

_TPU_ROWS: tuple[tuple[str, str, str, str], ...] = (
    # --- Hong Kong Island ---
    ("CW_1", "CW", "Kennedy Town", "M130,225 L140,225 L142,235 L130,235 Z"),
    ("CW_2", "CW", "Sheung Wan", "M140,225 L150,225 L150,235 L142,235 Z"),
    ("CW_3", "CW", "Mid-levels West", "M135,235 L150,235 L150,245 L135,245 Z"),
    ("WC_1", "WC", "Wan Chai", "M150,227 L160,227 L160,235 L150,235 Z"),
    ("WC_2", "WC", "Causeway Bay", "M160,227 L170,227 L170,235 L160,235 Z"),
    ("WC_3", "WC", "Happy Valley", "M155,235 L170,235 L165,245 L155,245 Z"),
    ("E_1", "E", "North Point", "M170,228 L185,228 L185,235 L170,235 Z"),
    ("E_2", "E", "Quarry Bay", "M185,228 L200,230 L195,240 L185,235 Z"),
    ("E_3", "E", "Chai Wan", "M200,230 L210,235 L205,245 L195,240 Z"),
    ("E_4", "E", "Shau Kei Wan", "M190,235 L200,235 L195,245 L185,240 Z"),
    ("S_1", "S", "Pok Fu Lam", "M130,245 L145,245 L140,260 L130,255 Z"),
    ("S_2", "S", "Aberdeen", "M145,245 L160,245 L160,255 L145,260 Z"),
    ("S_3", "S", "Repulse Bay", "M160,245 L180,250 L170,265 L160,255 Z"),
    ("S_4", "S", "Stanley", "M180,250 L195,260 L185,275 L175,265 Z"),
    # --- Kowloon ---
    ("YTM_1", "YTM", "Tsim Sha Tsui", "M150,215 L165,215 L160,222 L150,220 Z"),
    ("YTM_2", "YTM", "Jordan", "M150,210 L165,210 L165,215 L150,215 Z"),
    ("YTM_3", "YTM", "Mong Kok", "M150,200 L165,200 L165,210 L150,210 Z"),
    ("SSP_1", "SSP", "Cheung Sha Wan", "M135,195 L150,200 L150,210 L135,205 Z"),
    ("SSP_2", "SSP", "Sham Shui Po", "M140,190 L155,195 L150,200 L140,195 Z"),
    ("SSP_3", "SSP", "Lai Chi Kok", "M130,190 L140,190 L140,200 L130,195 Z"),
    ("KC_1", "KC", "Hung Hom", "M165,210 L180,215 L175,222 L165,215 Z"),
    ("KC_2", "KC", "To Kwa Wan", "M165,200 L180,200 L180,215 L165,210 Z"),
    ("KC_3", "KC", "Kowloon Tong", "M160,190 L175,190 L175,200 L160,200 Z"),
    ("WTS_1", "WTS", "Wong Tai Sin", "M175,185 L190,185 L190,195 L175,195 Z"),
    ("WTS_2", "WTS", "Diamond Hill", "M180,180 L200,180 L195,190 L180,185 Z"),
    ("KT_1", "KT", "Kwun Tong", "M190,195 L210,195 L205,215 L190,205 Z"),
    ("KT_2", "KT", "Lam Tin", "M200,190 L215,190 L215,205 L200,200 Z"),
    ("KT_3", "KT", "Yau Tong", "M205,205 L220,205 L215,220 L205,215 Z"),
    # --- New Territories West ---
    ("K_1", "K", "Kwai Chung", "M130,170 L150,175 L145,190 L130,185 Z"),
    ("K_2", "K", "Tsing Yi", "M120,190 L135,190 L135,205 L120,200 Z"),
    ("TW_1", "TW", "Tsuen Wan Town", "M125,160 L145,165 L140,175 L125,170 Z"),
    ("TW_2", "TW", "Sham Tseng", "M110,165 L125,170 L120,180 L105,175 Z"),
    ("TW_3", "TW", "Ma Wan", "M135,185 L145,185 L145,190 L135,190 Z"),
    ("TM_1", "TM", "Tuen Mun Central", "M80,160 L100,160 L100,180 L80,175 Z"),
    ("TM_2", "TM", "Tuen Mun West", "M60,165 L80,165 L80,190 L60,180 Z"),
    ("TM_3", "TM", "So Kwun Wat", "M100,165 L110,170 L105,180 L95,175 Z"),
    ("YL_1", "YL", "Yuen Long Town", "M90,130 L110,130 L110,150 L90,150 Z"),
    ("YL_2", "YL", "Tin Shui Wai", "M80,120 L100,120 L100,135 L80,135 Z"),
    ("YL_3", "YL", "Kam Tin", "M110,135 L125,135 L125,155 L110,150 Z"),
    ("YL_4", "YL", "Ha Tsuen", "M70,130 L90,130 L90,150 L70,145 Z"),
    # --- New Territories East ---
    ("N_1", "N", "Sheung Shui", "M130,90 L150,90 L150,110 L130,110 Z"),
    ("N_2", "N", "Fanling", "M150,95 L170,100 L165,120 L150,115 Z"),
    ("N_3", "N", "Sha Tau Kok", "M170,90 L200,90 L190,110 L170,105 Z"),
    ("N_4", "N", "Ta Kwu Ling", "M150,80 L180,80 L175,95 L150,90 Z"),
    ("TP_1", "TP", "Tai Po Market", "M150,120 L170,125 L165,145 L145,140 Z"),
    ("TP_2", "TP", "Plover Cove", "M170,115 L210,115 L200,140 L170,130 Z"),
    ("TP_3", "TP", "Tai Po Kau", "M155,140 L170,140 L165,155 L150,150 Z"),
    ("ST_1", "ST", "Sha Tin Central", "M155,155 L175,160 L170,175 L150,170 Z"),
    ("ST_2", "ST", "Ma On Shan", "M175,150 L200,145 L195,165 L175,165 Z"),
    ("ST_3", "ST", "Fo Tan", "M150,145 L165,150 L160,160 L150,155 Z"),
    ("ST_4", "ST", "Tai Wai", "M145,165 L160,165 L155,180 L140,175 Z"),
    ("SK_1", "SK", "Sai Kung Town", "M200,160 L220,155 L225,180 L205,185 Z"),
    ("SK_2", "SK", "Tseung Kwan O", "M205,190 L225,190 L220,215 L200,205 Z"),
    ("SK_3", "SK", "Clear Water Bay", "M220,195 L240,205 L230,230 L215,220 Z"),
    # --- Islands ---
    ("I_1", "I", "Tung Chung", "M70,195 L95,195 L90,210 L65,205 Z"),
    ("I_2", "I", "Discovery Bay", "M100,195 L115,200 L110,215 L95,210 Z"),
    ("I_3", "I", "Mui Wo / South Lantau", "M70,210 L100,215 L90,240 L60,230 Z"),
    ("I_4", "I", "Tai O", "M50,200 L70,205 L65,225 L45,215 Z"),
    ("I_5", "I", "Cheung Chau", "M105,245 L115,245 L115,255 L105,255 Z"),
    ("I_6", "I", "Lamma Island", "M120,250 L135,255 L130,275 L115,270 Z"),
)

SUB_REGIONS: tuple[RegionRecord, ...] = tuple(
    RegionRecord(id=tpu_id, parent_id=parent, name=name, path=path)
    for tpu_id, parent, name, path in _TPU_ROWS
)

_DISTRICTS_BY_CODE: dict[str, District] = {d.code: d for d in DISTRICTS}
_SUB_REGIONS_BY_ID: dict[str, RegionRecord] = {r.id: r for r in SUB_REGIONS}


def _check_catalog() -> None:
    """Every TPU must belong to exactly one known district."""
    if len(_SUB_REGIONS_BY_ID) != len(SUB_REGIONS):
        raise ValueError("Duplicate TPU id in region catalog")
    for region in SUB_REGIONS:
        if region.parent_id not in _DISTRICTS_BY_CODE:
            raise ValueError(f"TPU {region.id} has unknown district {region.parent_id}")


_check_catalog()


# =============================================================================
# Lookups
# =============================================================================

def get_district(code: str) -> District | None:
    return _DISTRICTS_BY_CODE.get(code.upper().strip())


def get_sub_region(region_id: str) -> RegionRecord | None:
    return _SUB_REGIONS_BY_ID.get(region_id)


def get_sub_regions(district_code: Optional[str] = None) -> list[RegionRecord]:
    """All TPUs, or only those of one district."""
    if district_code is None:
        return list(SUB_REGIONS)
    code = district_code.upper().strip()
    return [r for r in SUB_REGIONS if r.parent_id == code]


def district_order(code: str) -> int:
    """Position of a district in the canonical list (unknown codes sort last)."""
    try:
        return DISTRICT_CODES.index(code)
    except ValueError:
        return len(DISTRICT_CODES)


def _normalize_name(name: str) -> str:
    name = name.lower().replace("&", " and ")
    return re.sub(r"\s+", " ", name).strip()


def resolve_district(residency: str) -> District | None:
    """
    Resolve a self-declared residency to a district.

    Accepts a district code ("CW") or an English district name in any case,
    with "&" or "and" ("Central & Western").
    """
    if not residency or not residency.strip():
        return None

    by_code = get_district(residency)
    if by_code:
        return by_code

    wanted = _normalize_name(residency)
    for district in DISTRICTS:
        if _normalize_name(district.name) == wanted:
            return district
    return None


# =============================================================================
# Geometry helpers
# =============================================================================

_PATH_TOKEN = re.compile(r"([A-Za-z])|(-?\d+(?:\.\d+)?)")


def parse_path(path: str) -> list[tuple[float, float]]:
    """
    Parse an absolute M/L/Z polygon path into its vertices.

    Only the commands used by the catalog are supported.
    """
    vertices: list[tuple[float, float]] = []
    numbers: list[float] = []

    for command, number in _PATH_TOKEN.findall(path):
        if command:
            if command not in "MLZ":
                raise ValueError(f"Unsupported path command: {command}")
            continue
        numbers.append(float(number))
        if len(numbers) == 2:
            vertices.append((numbers[0], numbers[1]))
            numbers = []

    if numbers:
        raise ValueError(f"Odd number of coordinates in path: {path!r}")
    return vertices


def label_anchor(path: str) -> tuple[float, float]:
    """Vertex centroid of a polygon path, used to place TPU labels."""
    vertices = parse_path(path)
    if not vertices:
        return (0.0, 0.0)
    xs = [x for x, _ in vertices]
    ys = [y for _, y in vertices]
    return (sum(xs) / len(xs), sum(ys) / len(ys))
