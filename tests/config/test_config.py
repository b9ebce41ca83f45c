from config.config import AppConfig, ExportConfig, LedgerConfig, PasswordPolicy


def test_defaults():
    """AppConfig initializes with the documented defaults."""
    config = AppConfig()
    assert config.log_level == "INFO"
    assert config.ledger.max_cas_attempts == 3
    assert config.password_policy.min_length == 6
    assert config.export.currency_symbol == "S/."
    assert config.export.additional_materials_category == "materiales adicionales"


def test_default_factory_creates_separate_instances():
    config1 = AppConfig()
    config2 = AppConfig()
    assert config1.ledger is not config2.ledger
    config1.ledger.max_cas_attempts = 10
    assert config2.ledger.max_cas_attempts == 3


def test_custom_values():
    config = AppConfig(
        ledger=LedgerConfig(max_cas_attempts=5),
        password_policy=PasswordPolicy(min_length=10),
        export=ExportConfig(company_name="ACME"),
    )
    assert config.ledger.max_cas_attempts == 5
    assert config.password_policy.min_length == 10
    assert config.export.company_name == "ACME"
    # untouched defaults
    assert config.export.tax_id == "10734666314"


def test_from_env(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LEDGER_MAX_CAS_ATTEMPTS", "7")
    monkeypatch.setenv("PASSWORD_MIN_LENGTH", "8")
    monkeypatch.setenv("EXPORT_COMPANY_NAME", "Seguridad SAC")
    monkeypatch.delenv("EXPORT_ADDRESS", raising=False)

    config = AppConfig.from_env()

    assert config.log_level == "DEBUG"
    assert config.ledger.max_cas_attempts == 7
    assert config.password_policy.min_length == 8
    assert config.export.company_name == "Seguridad SAC"
    assert config.export.address == "Nueva Cajamarca"
