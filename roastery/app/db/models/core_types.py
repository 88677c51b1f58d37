import enum

class Role(str, enum.Enum):
    admin = "ADMIN"
    owner = "OWNER"
    retailer = "RETAILER"
    roaster = "ROASTER"
    barista = "BARISTA"

class OrderStatus(str, enum.Enum):
    pending = "PENDING"
    confirmed = "CONFIRMED"
    roasted = "ROASTED"
    delivered = "DELIVERED"
    cancelled = "CANCELLED"

class PackageType(str, enum.Enum):
    small_espresso = "SMALL_ESPRESSO"
    small_filter = "SMALL_FILTER"
    medium_espresso = "MEDIUM_ESPRESSO"
    medium_filter = "MEDIUM_FILTER"
    large = "LARGE"

class PackageClass(str, enum.Enum):
    small = "SMALL"
    medium = "MEDIUM"
    large = "LARGE"

class AlertLevel(str, enum.Enum):
    ok = "OK"
    warning = "WARNING"
    critical = "CRITICAL"

class CoffeeGrade(str, enum.Enum):
    specialty = "SPECIALTY"
    premium = "PREMIUM"
    rarity = "RARITY"


# Colonne de comptage associée à chaque type de paquet
# (RetailInventory et OrderItem partagent les mêmes noms)
PACKAGE_COLUMNS = {
    PackageType.small_espresso: "small_bags_espresso",
    PackageType.small_filter: "small_bags_filter",
    PackageType.medium_espresso: "medium_bags_espresso",
    PackageType.medium_filter: "medium_bags_filter",
    PackageType.large: "large_bags",
}
