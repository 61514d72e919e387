"""Weather-station world map: ISD tile server and map bootstrap client."""

__version__ = "0.1.0"
