from .reference import ClientCompany, SoftwareEngineer
from .shipments import Shipment, ShipmentLaptop
from .laptops import Laptop, ReceptionReport
from .audit import AuditEvent

__all__ = [
    'ClientCompany', 'SoftwareEngineer',
    'Shipment', 'ShipmentLaptop',
    'Laptop', 'ReceptionReport',
    'AuditEvent',
]
