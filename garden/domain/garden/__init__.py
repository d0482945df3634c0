from .garden_manager import GardenManager, OperationResult

__all__ = ["GardenManager", "OperationResult"]
