from services.discovery.discovery.service import DiscoveryService, SessionView, SwipeResult, VenueDetail

__all__ = ["DiscoveryService", "SessionView", "SwipeResult", "VenueDetail"]
