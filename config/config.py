"""
Configuration classes for the quotation and inventory manager.
Defines ledger, credential and export settings in a type-safe, extensible way.
"""

import os
from dataclasses import dataclass, field

from utils.env import load_project_dotenv


@dataclass
class LedgerConfig:
    max_cas_attempts: int = 3  # Compare-and-set retries before giving up on a product or quote status


@dataclass
class PasswordPolicy:
    min_length: int = 6


@dataclass
class ExportConfig:
    company_name: str = "DUOLINK S.A.C."
    tax_id: str = "10734666314"
    address: str = "Nueva Cajamarca"
    currency_symbol: str = "S/."
    output_dir: str = "."
    additional_materials_category: str = "materiales adicionales"


@dataclass
class AppConfig:
    log_level: str = "INFO"
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    password_policy: PasswordPolicy = field(default_factory=PasswordPolicy)
    export: ExportConfig = field(default_factory=ExportConfig)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build a config from environment variables (and the project ``.env``)."""
        load_project_dotenv()
        export = ExportConfig(
            company_name=os.getenv("EXPORT_COMPANY_NAME", ExportConfig.company_name),
            tax_id=os.getenv("EXPORT_TAX_ID", ExportConfig.tax_id),
            address=os.getenv("EXPORT_ADDRESS", ExportConfig.address),
            output_dir=os.getenv("EXPORT_OUTPUT_DIR", ExportConfig.output_dir),
        )
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            ledger=LedgerConfig(max_cas_attempts=int(os.getenv("LEDGER_MAX_CAS_ATTEMPTS", "3"))),
            password_policy=PasswordPolicy(min_length=int(os.getenv("PASSWORD_MIN_LENGTH", "6"))),
            export=export,
        )


# Example usage:
# config = AppConfig.from_env()
# ledger = InventoryLedger(products, config=config.ledger)
