"""Stream routing and windowed aggregation of relayed events."""
