"""Custom exceptions for the fedrounds system."""


class FedRoundsError(Exception):
    """Base exception for the fedrounds system.
    
    All custom exceptions in the system inherit from this base class.
    """
    pass


class ConfigurationError(FedRoundsError):
    """Errors in configuration or setup.
    
    Raised when:
    - Configuration validation fails (empty shard list, bad epoch budget)
    - A model, optimizer or reader tag is not registered
    - A run directory already holds state and overwrite was not requested
    """
    pass


class StorageError(FedRoundsError):
    """Errors related to the persisted run state.
    
    Raised when:
    - Registry, model or snapshot records are missing or unreadable
    - A record file holds invalid JSON or lacks required fields
    - A durable write fails
    """
    pass


class DataError(FedRoundsError):
    """Errors related to shard data loading and schema resolution.
    
    Raised when:
    - A reachable shard fails to load
    - Formula columns are missing from a shard
    - Shard values are non-numeric or missing
    """
    pass


class TrainingError(FedRoundsError):
    """Errors during local optimization and aggregation.
    
    Raised when:
    - Local optimization produces a NaN/Inf loss
    - Aggregation fails due to dimension mismatches
    """
    pass
