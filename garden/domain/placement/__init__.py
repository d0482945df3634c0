from .placement_engine import MAX_CAPACITY, PlacementEngine, PlacementOutcome

__all__ = ["MAX_CAPACITY", "PlacementEngine", "PlacementOutcome"]
