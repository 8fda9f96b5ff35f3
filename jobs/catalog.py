"""
Fixed service catalog offered at booking time.

Catalog entries are reference data: jobs snapshot the items they were booked
with, so editing this list never rewrites an existing job.
"""
import enum
from dataclasses import asdict, dataclass
from decimal import Decimal


class ServiceType(str, enum.Enum):
    MAINTENANCE = "MAINTENANCE"
    REPAIR = "REPAIR"
    DIAGNOSTIC = "DIAGNOSTIC"
    ROADSIDE = "ROADSIDE"


@dataclass(frozen=True)
class ServiceItem:
    id: str
    name: str
    price: Decimal
    duration_min: int
    type: ServiceType
    description: str

    def to_dict(self):
        data = asdict(self)
        data["price"] = str(self.price)
        data["type"] = self.type.value
        return data


def _item(id, name, price, duration_min, type, description):
    return ServiceItem(id, name, Decimal(price), duration_min, type, description)


COMMON_SERVICES = (
    # Roadside / Urgent
    _item('rs1', 'Car Lockout Service', '85.00', 30, ServiceType.REPAIR, 'Emergency door unlocking service.'),
    _item('rs2', 'Jump Start', '65.00', 20, ServiceType.REPAIR, 'Battery jump start service.'),
    _item('rs3', 'Tire Change (Spare)', '75.00', 45, ServiceType.REPAIR, 'Installation of your spare tire.'),
    _item('rs4', 'Fuel Delivery', '50.00', 30, ServiceType.REPAIR, 'Delivery of 2 gallons of fuel (fuel cost extra).'),
    _item('rs5', 'Battery Replacement', '149.99', 45, ServiceType.REPAIR, 'New battery installation and testing.'),

    # Maintenance
    _item('m1', 'Oil Change (Full Synthetic)', '89.99', 45, ServiceType.MAINTENANCE, 'Up to 5 qts synthetic oil + filter.'),
    _item('m2', 'Oil Change (Conventional)', '59.99', 45, ServiceType.MAINTENANCE, 'Up to 5 qts conventional oil + filter.'),
    _item('m3', 'Brake Pads Replacement (Front)', '189.00', 90, ServiceType.REPAIR, 'Ceramic brake pads installation (Front axle).'),
    _item('m4', 'Brake Pads Replacement (Rear)', '189.00', 90, ServiceType.REPAIR, 'Ceramic brake pads installation (Rear axle).'),
    _item('m5', 'Brake Rotors & Pads (Front)', '350.00', 120, ServiceType.REPAIR, 'New rotors and pads (Front axle).'),
    _item('m6', 'Spark Plug Replacement (4-Cyl)', '140.00', 60, ServiceType.MAINTENANCE, 'Replace spark plugs on 4-cylinder engine.'),
    _item('m7', 'Air Filter Replacement', '40.00', 15, ServiceType.MAINTENANCE, 'Engine air filter replacement.'),
    _item('m8', 'Cabin Air Filter', '45.00', 20, ServiceType.MAINTENANCE, 'Cabin air filter replacement.'),
    _item('m9', 'Wiper Blades Replacement', '40.00', 15, ServiceType.MAINTENANCE, 'Front windshield wiper blades.'),

    # Diagnostics & Inspection
    _item('d1', 'Diagnostic (Check Engine Light)', '125.00', 60, ServiceType.DIAGNOSTIC, 'OBD-II scan and physical inspection to identify issues.'),
    _item('d2', 'Pre-Purchase Inspection', '150.00', 90, ServiceType.DIAGNOSTIC, 'Comprehensive 150-point vehicle inspection.'),
    _item('d3', 'Leak Inspection', '95.00', 45, ServiceType.DIAGNOSTIC, 'Locate oil, coolant, or fluid leaks.'),
    _item('d4', 'Noise Diagnostic', '95.00', 45, ServiceType.DIAGNOSTIC, 'Identify source of rattles, squeaks, or grinding.'),

    # Common Repairs
    _item('r1', 'Alternator Replacement', '380.00', 120, ServiceType.REPAIR, 'Alternator replacement (parts included for most cars).'),
    _item('r2', 'Starter Replacement', '320.00', 90, ServiceType.REPAIR, 'Starter motor replacement.'),
    _item('r3', 'Serpentine Belt Replacement', '130.00', 45, ServiceType.REPAIR, 'Drive belt replacement.'),
    _item('r4', 'Radiator Replacement', '550.00', 180, ServiceType.REPAIR, 'Radiator replacement and coolant flush.'),
    _item('r5', 'Thermostat Replacement', '220.00', 90, ServiceType.REPAIR, 'Thermostat housing and seal.'),
    _item('r6', 'Water Pump Replacement', '450.00', 180, ServiceType.REPAIR, 'Water pump replacement (external only).'),
    _item('r7', 'O2 Sensor Replacement', '210.00', 60, ServiceType.REPAIR, 'Oxygen sensor replacement (per sensor).'),
    _item('r8', 'Headlight Bulb Replacement', '60.00', 30, ServiceType.REPAIR, 'Standard halogen bulb replacement (pair).'),
)

_BY_ID = {item.id: item for item in COMMON_SERVICES}


def all_services():
    return list(COMMON_SERVICES)


def get_service(service_id):
    """Return the catalog item with this id. Raises KeyError if unknown."""
    return _BY_ID[service_id]


def get_services(service_ids):
    """
    Resolve a list of ids in the given order.
    Raises KeyError naming the first unknown id.
    """
    return [get_service(service_id) for service_id in service_ids]
