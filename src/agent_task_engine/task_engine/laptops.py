"""Static laptop catalog and the recommendation used by laptop-purchase tasks."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Optional

from ..constants import RECOMMENDATION_TOP_N

PERFORMANCE_LEVELS = ("low", "medium", "high", "extreme")
MIN_MATCHES = 3
BUDGET_WIDEN_RATIO = 0.2


@dataclass(frozen=True)
class Laptop:
    id: str
    brand: str
    model: str
    price: int
    screen_size: str
    weight: float
    performance: str
    suitable_for: tuple[str, ...]
    cpu: str
    memory: str
    storage: str
    graphics: str
    pros: tuple[str, ...]
    cons: tuple[str, ...]
    rating: float
    availability: bool = True

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["suitable_for"] = list(self.suitable_for)
        data["pros"] = list(self.pros)
        data["cons"] = list(self.cons)
        return data


LAPTOP_CATALOG: tuple[Laptop, ...] = (
    Laptop("lenovo-x1c", "lenovo", "ThinkPad X1 Carbon", 9999, '14"', 1.12, "high",
           ("business", "office", "programming"), "Intel Core Ultra 7", "32GB", "1TB SSD", "Intel Arc",
           ("Excellent keyboard", "Very light"), ("Expensive",), 4.7),
    Laptop("lenovo-xiaoxin", "lenovo", "Xiaoxin Pro 14", 4999, '14"', 1.45, "medium",
           ("office", "student", "programming"), "AMD Ryzen 7", "16GB", "512GB SSD", "Radeon 780M",
           ("Great value", "Bright screen"), ("Average speakers",), 4.5),
    Laptop("apple-mba13", "apple", "MacBook Air 13", 7999, '13.6"', 1.24, "medium",
           ("office", "student", "design", "programming"), "Apple M3", "16GB", "512GB SSD", "10-core GPU",
           ("Fanless", "Long battery life"), ("Limited ports",), 4.8),
    Laptop("apple-mbp14", "apple", "MacBook Pro 14", 14999, '14.2"', 1.55, "extreme",
           ("design", "programming", "business"), "Apple M3 Pro", "36GB", "1TB SSD", "18-core GPU",
           ("Outstanding display", "Top performance"), ("Very expensive",), 4.9),
    Laptop("asus-rog-g14", "asus", "ROG Zephyrus G14", 11999, '14"', 1.5, "extreme",
           ("gaming", "design", "programming"), "AMD Ryzen 9", "32GB", "1TB SSD", "RTX 4070",
           ("Powerful GPU", "Compact"), ("Gets warm",), 4.6),
    Laptop("asus-vivobook", "asus", "Vivobook 15", 3299, '15.6"', 1.7, "low",
           ("office", "student"), "Intel Core i5", "8GB", "512GB SSD", "Intel Iris Xe",
           ("Affordable",), ("Dim screen", "Plastic build"), 4.0),
    Laptop("dell-xps13", "dell", "XPS 13", 8999, '13.4"', 1.19, "high",
           ("business", "office", "programming"), "Intel Core Ultra 7", "16GB", "512GB SSD", "Intel Arc",
           ("Premium build", "Compact"), ("Few ports",), 4.5),
    Laptop("dell-g15", "dell", "G15 Gaming", 6499, '15.6"', 2.65, "high",
           ("gaming", "student"), "Intel Core i7", "16GB", "512GB SSD", "RTX 4060",
           ("Strong cooling", "Good price for GPU"), ("Heavy",), 4.3),
    Laptop("xiaomi-redmibook", "xiaomi", "RedmiBook Pro 15", 4599, '15.6"', 1.8, "medium",
           ("office", "student", "programming"), "Intel Core i5", "16GB", "512GB SSD", "Intel Iris Xe",
           ("High-res screen",), ("Average battery",), 4.2),
    Laptop("huawei-matebook", "huawei", "MateBook X Pro", 10999, '14.2"', 0.98, "high",
           ("business", "office", "design"), "Intel Core Ultra 9", "32GB", "1TB SSD", "Intel Arc",
           ("Ultra light", "Stunning display"), ("Pricey",), 4.6),
    Laptop("hp-envy", "hp", "Envy x360 14", 5999, '14"', 1.4, "medium",
           ("office", "student", "design"), "AMD Ryzen 5", "16GB", "512GB SSD", "Radeon 760M",
           ("Convertible", "Pen support"), ("Glossy screen",), 4.3),
    Laptop("msi-raider", "msi", "Raider GE78", 19999, '17"', 3.1, "extreme",
           ("gaming",), "Intel Core i9", "64GB", "2TB SSD", "RTX 4090",
           ("Desktop-class GPU",), ("Very heavy", "Loud fans"), 4.4),
)


def _as_number(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [value.lower()]
    return [str(v).lower() for v in value]


def score_laptop(laptop: Laptop, *, usage: str, brands: list[str], performance: Optional[str]) -> float:
    """Quality score: rating plus bonuses for matching the buyer's preferences."""
    score = laptop.rating * 20
    if usage and usage in laptop.suitable_for:
        score += 10
    if brands and laptop.brand in brands:
        score += 8
    if performance in PERFORMANCE_LEVELS:
        gap = abs(PERFORMANCE_LEVELS.index(laptop.performance) - PERFORMANCE_LEVELS.index(performance))
        score -= gap * 4
    if not laptop.availability:
        score -= 25
    return round(score, 2)


def _matches(
    laptop: Laptop, low: float, high: float, usage: str, brands: list[str]
) -> bool:
    if not low <= laptop.price <= high:
        return False
    if usage and usage not in laptop.suitable_for:
        return False
    if brands and laptop.brand not in brands:
        return False
    return True


def recommend_laptops(
    parameters: dict[str, Any],
    catalog: Iterable[Laptop] = LAPTOP_CATALOG,
    *,
    top_n: int = RECOMMENDATION_TOP_N,
) -> dict[str, Any]:
    """Filter, rank and truncate *catalog* against the buyer's parameters.

    When fewer than three laptops match, the filter is widened: the budget
    grows by 20% on each side and the brand and usage constraints are dropped.
    """
    laptops = list(catalog)
    budget_min = _as_number(parameters.get("budget_min"), 0.0)
    budget_max = _as_number(parameters.get("budget_max"), float("inf"))
    if budget_max < budget_min:
        budget_min, budget_max = budget_max, budget_min
    usage = str(parameters.get("usage_type") or "").lower()
    brands = _as_list(parameters.get("brand_preference"))
    performance = parameters.get("performance_level")

    matches = [lap for lap in laptops if _matches(lap, budget_min, budget_max, usage, brands)]
    widened = False
    if len(matches) < MIN_MATCHES:
        widened = True
        low = budget_min * (1 - BUDGET_WIDEN_RATIO)
        high = budget_max * (1 + BUDGET_WIDEN_RATIO)
        matches = [lap for lap in laptops if _matches(lap, low, high, "", [])]

    ranked = sorted(
        matches,
        key=lambda lap: (-score_laptop(lap, usage=usage, brands=brands, performance=performance), lap.price, lap.id),
    )
    top = ranked[:top_n]

    recommendations = []
    for laptop in top:
        item = laptop.to_dict()
        item["score"] = score_laptop(laptop, usage=usage, brands=brands, performance=performance)
        recommendations.append(item)

    prices = [lap.price for lap in top]
    return {
        "type": "laptop_purchase_result",
        "search_params": {
            "budget_min": budget_min,
            "budget_max": None if budget_max == float("inf") else budget_max,
            "usage": usage,
            "brands": brands,
            "performance": performance,
        },
        "recommendations": recommendations,
        "summary": {
            "total_found": len(matches),
            "price_range": {"min": min(prices), "max": max(prices)} if prices else None,
            "top_choice": recommendations[0] if recommendations else None,
            "widened_search": widened,
        },
        "buying_advice": _buying_advice(usage, top, widened),
        "purchase_links": [
            {
                "laptop_id": lap.id,
                "platform": "official-store",
                "url": f"https://store.example.com/{lap.brand}/{lap.id}",
                "price": lap.price,
                "in_stock": lap.availability,
            }
            for lap in top
        ],
    }


def _buying_advice(usage: str, top: list[Laptop], widened: bool) -> list[str]:
    advice: list[str] = []
    if widened:
        advice.append("Few laptops matched every preference; the search was widened.")
    if usage == "gaming":
        advice.append("Prioritise the GPU and cooling over weight.")
    elif usage in ("business", "office"):
        advice.append("Battery life and weight matter more than raw performance.")
    elif usage in ("design", "programming"):
        advice.append("Aim for at least 16GB of memory and a high-resolution screen.")
    elif usage == "student":
        advice.append("Look for education discounts and a durable build.")
    if top and any(lap.weight > 2.5 for lap in top):
        advice.append("Some recommendations are heavy; consider portability.")
    return advice
