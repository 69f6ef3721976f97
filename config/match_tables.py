"""Static lookup tables used by the manufacturer matching criteria.

Region → country lists, food category keywords, catalog synonyms, packaging
buckets and free-text requirement categories. All tables are read-only.
"""
from types import MappingProxyType

# Regional location requests → countries that satisfy them
REGION_COUNTRIES = MappingProxyType({
    "asia": (
        "china", "japan", "korea", "india", "thailand", "vietnam",
        "singapore", "malaysia", "indonesia", "philippines",
    ),
    "europe": (
        "germany", "france", "uk", "italy", "spain", "netherlands",
        "belgium", "switzerland", "sweden", "denmark", "norway",
    ),
    "north america": ("united states", "usa", "canada", "mexico"),
    "south america": ("brazil", "argentina", "chile", "colombia", "peru"),
    "africa": ("south africa", "egypt", "nigeria", "kenya", "morocco"),
    "oceania": ("australia", "new zealand"),
})

# Product name ↔ manufacturer industry relatedness
FOOD_CATEGORY_KEYWORDS = MappingProxyType({
    "sauce": ("condiment", "sauce", "dressing", "marinade"),
    "seasoning": ("spice", "seasoning", "flavor", "flavoring"),
    "fermented": ("miso", "kimchi", "sauerkraut", "kombucha", "yogurt"),
    "beverage": ("drink", "juice", "tea", "coffee", "water", "soda"),
    "dairy": ("milk", "cheese", "yogurt", "cream", "butter"),
    "baked goods": ("bread", "pastry", "bakery", "cake", "cookie"),
    "snack": ("chip", "crisp", "cracker", "nut", "popcorn"),
    "grain": ("rice", "pasta", "noodle", "cereal", "flour"),
    "meat": ("beef", "pork", "chicken", "poultry", "sausage"),
    "seafood": ("fish", "shrimp", "seafood", "shellfish"),
    "plant-based": ("vegan", "vegetarian", "plant", "tofu", "meat alternative"),
})

# Requested product name ↔ catalog category/foodType
CATALOG_SYNONYMS = MappingProxyType({
    "soy sauce": ("soy sauce", "soysauce"),
    "sauce": ("sauce", "dressing", "marinade", "condiment"),
    "miso": ("miso",),
    "seasoning": ("seasoning", "spice", "mix"),
})

# Manufacturer preferred categories ↔ product name keywords
PREFERRED_CATEGORY_KEYWORDS = MappingProxyType({
    "sauce": ("sauce", "condiment", "dressing", "marinade"),
    "beverage": ("drink", "juice", "water", "tea", "coffee", "soda"),
    "snack": ("chips", "crackers", "nuts", "seeds", "bars", "popcorn"),
    "dairy": ("milk", "cheese", "yogurt", "cream", "butter"),
    "grain": ("rice", "noodle", "pasta", "bread", "cereal", "flour"),
    "protein": ("meat", "fish", "tofu", "seafood", "beef", "pork", "poultry"),
    "bakery": ("bread", "cake", "pastry", "cookie", "baked"),
    "confectionery": ("candy", "chocolate", "sweet", "dessert", "confection"),
    "fruit": ("fruit", "apple", "berry", "citrus", "tropical"),
    "vegetable": ("vegetable", "produce", "fresh", "greens"),
})

# Canonical packaging bucket → raw spellings (matched as whole words)
PACKAGING_SYNONYMS = MappingProxyType({
    "bottle": ("bottle", "flask"),
    "can": ("can", "tin"),
    "jar": ("jar", "mason jar"),
    "bag": ("bag", "sack"),
    "pouch": ("pouch", "doypack", "stand-up pouch"),
    "box": ("box", "carton", "case"),
    "sachet": ("sachet", "packet", "stick pack"),
    "tray": ("tray", "punnet"),
    "tub": ("tub", "cup"),
})

# Free-text requirement themes
REQUIREMENT_KEYWORD_CATEGORIES = MappingProxyType({
    "sustainability": ("sustainable", "eco", "green", "recycl", "organic", "environment"),
    "quality": ("quality", "premium", "standard", "inspection", "testing"),
    "customization": ("custom", "private label", "bespoke", "tailor", "formulation"),
    "technology": ("automat", "technology", "innovation", "equipment", "digital"),
    "delivery": ("delivery", "shipping", "logistics", "lead time", "fast"),
    "materials": ("ingredient", "material", "sourcing", "natural", "raw"),
})
