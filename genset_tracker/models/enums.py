"""Enums for the genset tracker - the valid values for statuses, roles and log actions."""
from enum import Enum


class GeneratorStatus(str, Enum):
    """Power state of a generator. Generators are created OFF."""
    ON = "ON"
    OFF = "OFF"


class CapacityUnit(str, Enum):
    KW = "KW"
    MW = "MW"
    HP = "HP"


class FuelType(str, Enum):
    DIESEL = "Diesel"
    NATURAL_GAS = "Natural Gas"
    GASOLINE = "Gasoline"
    PROPANE = "Propane"


class DetachReason(str, Enum):
    """Why a venue attachment interval was closed."""
    VENUE_DELETED = "VENUE_DELETED"
    MANUAL_REASSIGNMENT = "MANUAL_REASSIGNMENT"
    OTHER = "OTHER"


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class LogAction(str, Enum):
    """Actions recorded in the audit log."""
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"
    TURN_ON = "TURN_ON"
    TURN_OFF = "TURN_OFF"
    VENUE_UNTAGGED = "VENUE_UNTAGGED"
    VENUE_DELETED = "VENUE_DELETED"
    MANUAL = "MANUAL"
