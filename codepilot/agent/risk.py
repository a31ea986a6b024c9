from enum import Enum


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Keyed by tool name only; parameters never change a tool's tier.
RISK_TABLE = {
    "write_file": RiskTier.HIGH,
    "delete_file": RiskTier.HIGH,
    "run_command": RiskTier.HIGH,
    "create_file": RiskTier.HIGH,
    "update_package_json": RiskTier.MEDIUM,
    "init_project": RiskTier.MEDIUM,
}


def classify(tool_name: str) -> RiskTier:
    return RISK_TABLE.get(tool_name, RiskTier.LOW)


def needs_approval(tier: RiskTier) -> bool:
    return tier in (RiskTier.MEDIUM, RiskTier.HIGH)
