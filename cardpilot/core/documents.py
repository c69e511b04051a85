"""
Vendor master services agreements readable through queryVendorMSA.
"""

from typing import Dict, Optional

FEDEX_MSA = """MASTER SERVICES AGREEMENT

This Master Services Agreement is entered into between FedEx Corporation
("Vendor") and the Company ("Client").

1. Services. Vendor provides domestic and international parcel shipping,
   freight and logistics services as described in each Statement of Work.
2. Term. The agreement runs for thirty-six (36) months and renews for
   successive twelve (12) month periods unless either party gives sixty (60)
   days written notice.
3. Fees. Client pays the rates in Schedule A. Invoices are due net thirty (30)
   days. Volume discounts of 12% apply above 5,000 shipments per quarter.
4. Service levels. Vendor guarantees 98.5% on-time delivery for priority
   services; each missed percentage point earns a 2% credit on that month.
5. Liability. Vendor liability per shipment is limited to the declared value
   or USD 100, whichever is lower, unless additional coverage is purchased.
6. Termination. Either party may terminate for material breach not cured
   within thirty (30) days of written notice.
"""

VENDOR_MSAS: Dict[str, str] = {
    "fedex": FEDEX_MSA,
}


def find_vendor_msa(vendor_name: str) -> Optional[str]:
    """Case-insensitive lookup; partial names such as 'FedEx Ground' match."""
    if not vendor_name:
        return None
    needle = vendor_name.strip().lower()
    for vendor, document in VENDOR_MSAS.items():
        if vendor in needle or needle in vendor:
            return document
    return None
