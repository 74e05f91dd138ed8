from handymate.server.models.customer import Customer
from handymate.server.models.quote import Quote, QuoteLine
from handymate.server.models.invoice import Invoice, InvoiceLine
from handymate.server.models.signing import SigningToken, SignatureArtifact

__all__ = [
    "Customer",
    "Quote",
    "QuoteLine",
    "Invoice",
    "InvoiceLine",
    "SigningToken",
    "SignatureArtifact",
]
