"""
Token packages for Tribute web payments (EUR, RUB, USD).
Amounts are in the smallest currency unit (cents / kopecks).
"""
from dataclasses import asdict, dataclass

CURRENCIES = ("eur", "rub", "usd")

CUSTOM_TOKENS_MIN = 50
CUSTOM_TOKENS_MAX = 10000

# Base price per token in minor units
BASE_RATES = {
    "rub": 200,   # 2 ₽
    "eur": 2.2,   # €0.022
    "usd": 2.6,   # $0.026
}


@dataclass(frozen=True)
class TokenPackage:
    id: str
    tokens: int
    amount: int
    label: str
    price: str
    bonus: str | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if data["bonus"] is None:
            del data["bonus"]
        return data


WEB_PACKAGES: dict[str, list[TokenPackage]] = {
    "eur": [
        TokenPackage("eur_50", 50, 110, "50 tokens", "€1.10"),
        TokenPackage("eur_120", 120, 255, "120 tokens", "€2.55", "+4%"),
        TokenPackage("eur_300", 300, 600, "300 tokens", "€6.00", "+11%"),
        TokenPackage("eur_800", 800, 1600, "800 tokens", "€16.00", "+11%"),
    ],
    "rub": [
        TokenPackage("rub_50", 50, 10000, "50 токенов", "₽100"),
        TokenPackage("rub_120", 120, 23000, "120 токенов", "₽230", "+4%"),
        TokenPackage("rub_300", 300, 54000, "300 токенов", "₽540", "+11%"),
        TokenPackage("rub_800", 800, 144000, "800 токенов", "₽1,440", "+11%"),
    ],
    "usd": [
        TokenPackage("usd_50", 50, 130, "50 tokens", "$1.30"),
        TokenPackage("usd_120", 120, 300, "120 tokens", "$3.00", "+4%"),
        TokenPackage("usd_300", 300, 700, "300 tokens", "$7.00", "+11%"),
        TokenPackage("usd_800", 800, 1870, "800 tokens", "$18.70", "+11%"),
    ],
}


def get_packages(currency: str) -> list[TokenPackage]:
    return WEB_PACKAGES.get(currency, [])


def find_package(package_id: str, currency: str) -> TokenPackage | None:
    for pkg in get_packages(currency):
        if pkg.id == package_id:
            return pkg
    return None


def package_title(tokens: int) -> str:
    return f"{tokens} AiVerse Tokens"


def package_description(tokens: int) -> str:
    return f"Purchase {tokens} tokens for AI image generation"


def discount_for_tokens(tokens: int) -> float:
    """50-99: 0%, 100-299: 5%, 300+: 10%."""
    if tokens >= 300:
        return 0.10
    if tokens >= 100:
        return 0.05
    return 0.0


def custom_price(tokens: int, currency: str) -> int:
    """Price of an arbitrary token amount in minor units, tier discount applied."""
    rate = BASE_RATES[currency]
    # round half away from zero, like the web client does
    raw = tokens * rate * (1 - discount_for_tokens(tokens))
    return int(raw + 0.5)
