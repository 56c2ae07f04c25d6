"""Card network resolution from acquirer metadata"""

from typing import Optional

from chargeback_engine.domain.models import CardNetwork

DEFAULT_NETWORK = CardNetwork.VISA


def resolve_card_network(acquirer_name: Optional[str]) -> CardNetwork:
    """Pick the network a filing goes to; unknown acquirers are routed to Visa"""
    name = (acquirer_name or "").lower()
    if "mastercard" in name or "master card" in name:
        return CardNetwork.MASTERCARD
    if "visa" in name:
        return CardNetwork.VISA
    return DEFAULT_NETWORK
