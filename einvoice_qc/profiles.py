"""
Format profile registry: per-format field obligations, value rules, code
lists and format metadata.

This module is static configuration. Each supported output format has one
FormatFieldConfig row mapping every logical field to an obligation level
(required, optional or hidden), plus input hints and the value patterns
national rules impose (e.g. BR-DE-18, the Polish NIP). The same rows drive:
- the presence and value rules of the business rule evaluator
- the review surface, which shows, requires or hides input fields

Adding a format means adding a row here, not a new code path in the rules.
Rows are built with ``_profile``: fields not listed default to optional, so
every row covers every logical field.
"""

from enum import Enum
from typing import Mapping, Optional, Union

from .config import DEFAULT_OUTPUT_FORMAT, PEPPOL_PARTICIPANT_PATTERN, Obligation, OutputFormat, Severity
from .exceptions import UnknownFormatError
from .schemas import FieldPattern, FormatFieldConfig, FormatMetadata


FormatId = Union[OutputFormat, str]


# ============================================================================
# Logical Fields
# ============================================================================

# All logical field names, in the order presence rules report them
PRESENCE_FIELDS: tuple[str, ...] = (
    "invoice_number",
    "invoice_date",
    "currency",
    "seller_name",
    "seller_contact_name",
    "seller_email",
    "seller_phone",
    "seller_street",
    "seller_city",
    "seller_postal_code",
    "seller_country_code",
    "seller_vat_id",
    "seller_tax_number",
    "seller_electronic_address",
    "seller_electronic_address_scheme",
    "seller_iban",
    "seller_bic",
    "buyer_name",
    "buyer_street",
    "buyer_city",
    "buyer_postal_code",
    "buyer_country_code",
    "buyer_vat_id",
    "buyer_tax_number",
    "buyer_reference",
    "buyer_electronic_address",
    "buyer_electronic_address_scheme",
    "buyer_codice_destinatario",
    "payment_terms",
    "notes",
    "line_items",
)

# A required field is also satisfied by any of its alternatives
FIELD_ALTERNATIVES: dict[str, tuple[str, ...]] = {
    "seller_vat_id": ("seller_tax_number",),
    "buyer_vat_id": ("buyer_tax_number",),
    "seller_contact_name": ("seller_name",),
    "buyer_codice_destinatario": ("buyer_electronic_address",),
}

# Required by every profile, and the whole presence subset for unknown formats
UNIVERSAL_FIELDS: tuple[str, ...] = (
    "invoice_number",
    "invoice_date",
    "seller_name",
    "line_items",
)

_COMMON_REQUIRED: tuple[str, ...] = UNIVERSAL_FIELDS + ("currency", "buyer_name")

_SELLER_ADDRESS: tuple[str, ...] = (
    "seller_street",
    "seller_city",
    "seller_postal_code",
    "seller_country_code",
)

_PEPPOL_ADDRESSING: tuple[str, ...] = (
    "seller_electronic_address",
    "seller_electronic_address_scheme",
    "buyer_electronic_address",
    "buyer_electronic_address_scheme",
)


# ============================================================================
# Code Lists
# ============================================================================

# UNTDID 1001 document types accepted by EN 16931 (BT-3)
DOCUMENT_TYPE_CODES: frozenset[str] = frozenset({"380", "381", "384", "389"})

# ISO 4217 currencies seen on European e-invoices (BT-5)
CURRENCY_CODES: frozenset[str] = frozenset({
    "EUR", "USD", "GBP", "CHF", "SEK", "NOK", "DKK", "PLN", "CZK", "HUF",
    "RON", "BGN", "HRK", "ISK", "TRY", "RUB", "UAH", "JPY", "CNY", "AUD",
    "CAD", "NZD", "ZAR", "BRL", "MXN", "INR", "KRW", "SGD", "HKD", "TWD",
    "THB", "MYR", "PHP", "IDR", "AED", "SAR", "ILS", "EGP", "ARS", "CLP",
    "COP", "PEN",
})

# ISO 3166-1 alpha-2 (BT-40 / BT-55)
COUNTRY_CODES: frozenset[str] = frozenset("""
    AD AE AF AG AI AL AM AO AQ AR AS AT AU AW AX AZ BA BB BD BE BF BG BH BI
    BJ BL BM BN BO BQ BR BS BT BV BW BY BZ CA CC CD CF CG CH CI CK CL CM CN
    CO CR CU CV CW CX CY CZ DE DJ DK DM DO DZ EC EE EG EH ER ES ET FI FJ FK
    FM FO FR GA GB GD GE GF GG GH GI GL GM GN GP GQ GR GS GT GU GW GY HK HM
    HN HR HT HU ID IE IL IM IN IO IQ IR IS IT JE JM JO JP KE KG KH KI KM KN
    KP KR KW KY KZ LA LB LC LI LK LR LS LT LU LV LY MA MC MD ME MF MG MH MK
    ML MM MN MO MP MQ MR MS MT MU MV MW MX MY MZ NA NC NE NF NG NI NL NO NP
    NR NU NZ OM PA PE PF PG PH PK PL PM PN PR PS PT PW PY QA RE RO RS RU RW
    SA SB SC SD SE SG SH SI SJ SK SL SM SN SO SR SS ST SV SX SY SZ TC TD TF
    TG TH TJ TK TL TM TN TO TR TT TV TW TZ UA UG UM US UY UZ VA VC VE VG VI
    VN VU WF WS YE YT ZA ZM ZW
""".split())

# UNCL5305 VAT categories supported by EN 16931 (BT-95 / BT-102 / BT-151)
TAX_CATEGORY_CODES: frozenset[str] = frozenset({"S", "Z", "E", "AE", "K", "G", "O", "L"})

# Common UNECE Recommendation 20/21 units of measure (BT-130)
UNIT_CODES: frozenset[str] = frozenset("""
    C62 EA HUR DAY MON ANN H87 KGM MTR LTR MTK MTQ TNE KWH MIN SEC SET PR
    BX CT PK LS XPK XBX XCT KMT CMT MMT GRM MLT CLT DLT HLT PCE NAR NPR XPA
    XUN XSA LM WEE MOQ QAN
""".split())


# ============================================================================
# Per-Format Value Rules
# ============================================================================

_XRECHNUNG_VALUE_RULES: tuple[FieldPattern, ...] = (
    FieldPattern(
        rule_id="BR-DE-18",
        field="currency",
        pattern=r"EUR",
        message="XRechnung requires EUR as the invoice currency",
    ),
)

_NIP = r"(?:PL)?[0-9]{10}"
_NIP_MESSAGE = "Polish NIP must be exactly 10 digits, optionally prefixed with PL"

_KSEF_VALUE_RULES: tuple[FieldPattern, ...] = (
    FieldPattern(rule_id="KSEF-01", field="seller_vat_id", pattern=_NIP, ignore=r"[\s.-]", message=_NIP_MESSAGE),
    FieldPattern(rule_id="KSEF-01", field="seller_tax_number", pattern=_NIP, ignore=r"[\s.-]", message=_NIP_MESSAGE),
)

_FATTURAPA_VALUE_RULES: tuple[FieldPattern, ...] = (
    FieldPattern(
        rule_id="FPA-010a",
        field="seller_vat_id",
        pattern=r"IT[0-9]{11}",
        prefix="IT",
        message="Italian Partita IVA must be IT followed by 11 digits",
    ),
    FieldPattern(
        rule_id="FPA-021",
        field="buyer_codice_destinatario",
        pattern=r"[A-Z0-9]{7}",
        message="Codice Destinatario must be exactly 7 uppercase alphanumeric characters",
        severity=Severity.WARNING,
    ),
)

_DUTCH_BTW = r"NL[0-9]{9}B[0-9]{2}"
_DUTCH_BTW_MESSAGE = "Dutch VAT ID must be NL + 9 digits + B + 2 digits (e.g. NL123456789B01)"

_NLCIUS_VALUE_RULES: tuple[FieldPattern, ...] = tuple(
    FieldPattern(rule_id="NLCIUS-BTW-FORMAT", field=field, pattern=_DUTCH_BTW, prefix="NL", message=_DUTCH_BTW_MESSAGE)
    for field in ("seller_vat_id", "buyer_vat_id")
)

_RO_VAT = r"RO[0-9]{2,10}"
_RO_CUI = r"(?:RO)?[0-9]{1,10}"

_CIUS_RO_VALUE_RULES: tuple[FieldPattern, ...] = tuple(
    FieldPattern(
        rule_id="CIUS-RO-VAT-FORMAT",
        field=field,
        pattern=_RO_VAT,
        prefix="RO",
        message="Romanian VAT ID must be RO + 2 to 10 digits (e.g. RO12345678)",
    )
    for field in ("seller_vat_id", "buyer_vat_id")
) + tuple(
    FieldPattern(
        rule_id="CIUS-RO-CUI-FORMAT",
        field=field,
        pattern=_RO_CUI,
        message="Romanian CUI/CIF must be an optional RO prefix + up to 10 digits",
    )
    for field in ("seller_tax_number", "buyer_tax_number")
)


def _profile(
    format_id: str,
    required: tuple[str, ...] = (),
    hidden: tuple[str, ...] = (),
    hints: Optional[dict[str, str]] = None,
    warning_fields: tuple[str, ...] = (),
    value_rules: tuple[FieldPattern, ...] = (),
) -> FormatFieldConfig:
    fields = {name: Obligation.OPTIONAL for name in PRESENCE_FIELDS}
    for name in _COMMON_REQUIRED + required:
        fields[name] = Obligation.REQUIRED
    for name in hidden:
        fields[name] = Obligation.HIDDEN
    return FormatFieldConfig(
        format_id=format_id,
        fields=fields,
        hints=hints or {},
        warning_fields=frozenset(warning_fields),
        value_rules=value_rules,
    )


# ============================================================================
# Per-Format Field Configuration
# ============================================================================

_XRECHNUNG_REQUIRED: tuple[str, ...] = _SELLER_ADDRESS + (
    "seller_contact_name",
    "seller_email",
    "seller_phone",
    "seller_vat_id",
    "seller_electronic_address",
    "seller_iban",
    "buyer_street",
    "buyer_city",
    "buyer_postal_code",
    "buyer_country_code",
    "buyer_reference",
    "buyer_electronic_address",
    "payment_terms",
)

_XRECHNUNG_HINTS: dict[str, str] = {
    "seller_vat_id": "USt-IdNr. z.B. DE123456789, oder Steuernummer angeben",
    "seller_tax_number": "Steuernummer z.B. 12/345/67890, alternativ zur USt-IdNr.",
    "seller_electronic_address": "BT-34, z.B. E-Mail-Adresse des Rechnungsstellers",
    "buyer_electronic_address": "BT-49, z.B. E-Mail-Adresse des Rechnungsempfängers",
    "buyer_reference": "Leitweg-ID (BR-DE-15), Pflichtfeld für XRechnung",
    "currency": "Muss EUR sein (BR-DE-18)",
    "seller_iban": "IBAN für SEPA-Überweisung (BR-DE-23-a)",
}

FORMAT_FIELD_CONFIG: dict[str, FormatFieldConfig] = {
    # German standard, CII syntax
    OutputFormat.XRECHNUNG_CII.value: _profile(
        OutputFormat.XRECHNUNG_CII.value,
        required=_XRECHNUNG_REQUIRED,
        hidden=("buyer_codice_destinatario",),
        hints=_XRECHNUNG_HINTS,
        warning_fields=("buyer_reference",),
        value_rules=_XRECHNUNG_VALUE_RULES,
    ),
    # German standard, UBL syntax (same rules as CII)
    OutputFormat.XRECHNUNG_UBL.value: _profile(
        OutputFormat.XRECHNUNG_UBL.value,
        required=_XRECHNUNG_REQUIRED,
        hidden=("buyer_codice_destinatario",),
        hints=_XRECHNUNG_HINTS,
        warning_fields=("buyer_reference",),
        value_rules=_XRECHNUNG_VALUE_RULES,
    ),
    OutputFormat.PEPPOL_BIS.value: _profile(
        OutputFormat.PEPPOL_BIS.value,
        required=_SELLER_ADDRESS + _PEPPOL_ADDRESSING + (
            "seller_vat_id",
            "buyer_country_code",
            "payment_terms",
        ),
        hidden=("buyer_codice_destinatario",),
        hints={
            "seller_vat_id": "EU VAT ID required for Peppol (e.g. DE123456789)",
            "seller_electronic_address": "Peppol Participant ID (BT-34), e.g. 0088:1234567890123",
            "seller_electronic_address_scheme": "EAS scheme code, e.g. 0088 (EAN), 0192 (NO:ORG), 0184 (DK:P)",
            "buyer_electronic_address": "Peppol Participant ID (BT-49), e.g. 0088:9876543210987",
            "buyer_electronic_address_scheme": "EAS scheme code, e.g. 0088 (EAN), 0192 (NO:ORG)",
        },
    ),
    # Italy
    OutputFormat.FATTURAPA.value: _profile(
        OutputFormat.FATTURAPA.value,
        required=_SELLER_ADDRESS + (
            "seller_vat_id",
            "buyer_vat_id",
            "buyer_country_code",
            "buyer_codice_destinatario",
        ),
        hidden=(
            "seller_electronic_address",
            "seller_electronic_address_scheme",
            "buyer_electronic_address_scheme",
        ),
        hints={
            "seller_vat_id": "Partita IVA: formato IT + 11 cifre, es. IT01234567890",
            "buyer_vat_id": "P.IVA acquirente, o Codice Fiscale se soggetto privato",
            "buyer_electronic_address": "Indirizzo PEC, in alternativa al Codice Destinatario",
            "buyer_codice_destinatario": "Codice SDI: 7 caratteri alfanumerici per instradamento",
        },
        value_rules=_FATTURAPA_VALUE_RULES,
    ),
    # Poland, KSeF FA(3)
    OutputFormat.KSEF.value: _profile(
        OutputFormat.KSEF.value,
        required=(
            "seller_vat_id",
            "seller_street",
            "seller_city",
            "seller_postal_code",
        ),
        hidden=_PEPPOL_ADDRESSING + ("buyer_codice_destinatario", "notes"),
        hints={
            "seller_vat_id": "NIP: dokładnie 10 cyfr, np. 1234567890",
            "buyer_vat_id": "NIP nabywcy (10 cyfr), lub podaj nazwę firmy jeśli brak NIP",
        },
        value_rules=_KSEF_VALUE_RULES,
    ),
    # Netherlands, SI-UBL 2.0
    OutputFormat.NLCIUS.value: _profile(
        OutputFormat.NLCIUS.value,
        required=_SELLER_ADDRESS + _PEPPOL_ADDRESSING + (
            "seller_vat_id",
            "buyer_country_code",
            "payment_terms",
        ),
        hidden=("buyer_codice_destinatario",),
        hints={
            "seller_vat_id": "BTW-nummer: NL + 9 cijfers + B + 2 cijfers, bijv. NL123456789B01",
            "seller_electronic_address": "OIN (schema 0190, 20 cijfers) of KVK (schema 0106, 8 cijfers)",
            "seller_electronic_address_scheme": "0190 voor OIN, 0106 voor KVK",
            "buyer_electronic_address": "OIN (schema 0190, 20 cijfers) of KVK (schema 0106, 8 cijfers)",
            "buyer_electronic_address_scheme": "0190 voor OIN, 0106 voor KVK",
        },
        value_rules=_NLCIUS_VALUE_RULES,
    ),
    # Hybrid PDF/A-3 + CII, EN 16931 conformance level
    OutputFormat.FACTURX_EN16931.value: _profile(
        OutputFormat.FACTURX_EN16931.value,
        required=_SELLER_ADDRESS + ("seller_vat_id", "buyer_country_code"),
        hidden=("buyer_codice_destinatario",),
        hints={
            "seller_vat_id": "EU VAT ID required, e.g. FR12345678901 or DE123456789",
            "seller_electronic_address": "Only required when the invoice is sent via Peppol",
        },
    ),
    # Hybrid PDF/A-3 + CII, Basic conformance level
    OutputFormat.FACTURX_BASIC.value: _profile(
        OutputFormat.FACTURX_BASIC.value,
        required=_SELLER_ADDRESS + ("seller_vat_id", "buyer_country_code"),
        hidden=("buyer_codice_destinatario",),
        hints={
            "seller_vat_id": "EU VAT ID required, e.g. FR12345678901 or DE123456789",
        },
    ),
    # Romania, extends Peppol
    OutputFormat.CIUS_RO.value: _profile(
        OutputFormat.CIUS_RO.value,
        required=_SELLER_ADDRESS + _PEPPOL_ADDRESSING + (
            "seller_vat_id",
            "buyer_country_code",
            "payment_terms",
        ),
        hidden=("buyer_codice_destinatario",),
        hints={
            "seller_vat_id": "CIF/TVA: RO + 2-10 cifre, ex. RO12345678",
            "seller_tax_number": "CUI/CIF: prefixul RO opțional + până la 10 cifre",
            "buyer_tax_number": "CUI/CIF cumpărător: prefixul RO opțional + până la 10 cifre",
            "seller_electronic_address": "ID Participant Peppol (BT-34)",
            "buyer_electronic_address": "ID Participant Peppol (BT-49)",
        },
        value_rules=_CIUS_RO_VALUE_RULES,
    ),
}


def universal_profile(format_id: str) -> FormatFieldConfig:
    """Minimal profile for format ids without a registry row."""
    fields = {name: Obligation.OPTIONAL for name in PRESENCE_FIELDS}
    for name in UNIVERSAL_FIELDS:
        fields[name] = Obligation.REQUIRED
    return FormatFieldConfig(format_id=format_id, fields=fields)


# ============================================================================
# Field Configuration Lookups
# ============================================================================

def format_key(format_id: FormatId) -> str:
    """Normalize an OutputFormat or raw string to the registry key."""
    if isinstance(format_id, Enum):
        return str(format_id.value)
    return str(format_id or "").strip().lower()


def is_supported_format(format_id: FormatId) -> bool:
    return format_key(format_id) in FORMAT_FIELD_CONFIG


def get_field_config(
    format_id: FormatId,
    registry: Optional[Mapping[str, FormatFieldConfig]] = None,
) -> FormatFieldConfig:
    """
    Get the field configuration for a format.

    Unknown format ids get the universal profile rather than an error, so
    evaluation always has a rule subset to run.

    Args:
        format_id: Output format id
        registry: Optional table to consult instead of FORMAT_FIELD_CONFIG
    """
    key = format_key(format_id)
    table = FORMAT_FIELD_CONFIG if registry is None else registry
    config = table.get(key)
    return config if config is not None else universal_profile(key)


def get_obligation(format_id: FormatId, field: str) -> Obligation:
    """Obligation of a field for a format; unconstrained fields are optional."""
    return get_field_config(format_id).fields.get(field, Obligation.OPTIONAL)


def is_field_required(format_id: FormatId, field: str) -> bool:
    return get_obligation(format_id, field) == Obligation.REQUIRED


def is_field_visible(format_id: FormatId, field: str) -> bool:
    """True if the field should be shown (required or optional)."""
    return get_obligation(format_id, field) != Obligation.HIDDEN


def get_field_hint(format_id: FormatId, field: str) -> Optional[str]:
    return get_field_config(format_id).hints.get(field)


def required_fields(format_id: FormatId) -> list[str]:
    """Required fields of a format, in presence rule order."""
    config = get_field_config(format_id)
    return [name for name in PRESENCE_FIELDS if config.fields.get(name) == Obligation.REQUIRED]


def detect_format_from_data(
    seller_country_code: Optional[str] = None,
    buyer_country_code: Optional[str] = None,
    seller_electronic_address: Optional[str] = None,
) -> str:
    """
    Suggest the most appropriate output format from invoice data.

    Country rules take precedence: IT, PL, NL and RO sellers map to their
    national formats, French sellers or buyers to Factur-X. A Peppol
    participant id selects Peppol BIS. Everything else falls back to
    XRechnung CII.
    """
    seller_cc = (seller_country_code or "").strip().upper()
    buyer_cc = (buyer_country_code or "").strip().upper()

    national = {
        "IT": OutputFormat.FATTURAPA,
        "PL": OutputFormat.KSEF,
        "NL": OutputFormat.NLCIUS,
        "RO": OutputFormat.CIUS_RO,
    }
    if seller_cc in national:
        return national[seller_cc].value

    if seller_cc == "FR" or buyer_cc == "FR":
        return OutputFormat.FACTURX_EN16931.value

    address = (seller_electronic_address or "").strip()
    if address and PEPPOL_PARTICIPANT_PATTERN.match(address):
        return OutputFormat.PEPPOL_BIS.value

    return DEFAULT_OUTPUT_FORMAT


# ============================================================================
# Format Metadata
# ============================================================================

EU_PEPPOL_COUNTRIES: list[str] = [
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR",
    "DE", "GR", "HU", "IE", "IT", "LV", "LT", "LU", "MT", "NL",
    "PL", "PT", "RO", "SK", "SI", "ES", "SE", "NO", "IS", "LI",
]

FACTURX_COUNTRIES: list[str] = ["FR", "DE", "AT", "CH", "LU", "BE"]


def _xml(format_id: OutputFormat, display_name: str, description: str,
         countries: list[str], syntax_type: str) -> FormatMetadata:
    return FormatMetadata(
        id=format_id.value,
        display_name=display_name,
        description=description,
        countries=countries,
        syntax_type=syntax_type,
        mime_type="application/xml",
        file_extension=".xml",
        is_eu=True,
    )


def _hybrid_pdf(format_id: OutputFormat, display_name: str, description: str) -> FormatMetadata:
    return FormatMetadata(
        id=format_id.value,
        display_name=display_name,
        description=description,
        countries=FACTURX_COUNTRIES,
        syntax_type="PDF+CII",
        mime_type="application/pdf",
        file_extension=".pdf",
        is_eu=True,
    )


FORMAT_METADATA: dict[str, FormatMetadata] = {
    meta.id: meta for meta in [
        _xml(OutputFormat.XRECHNUNG_CII, "XRechnung (CII)",
             "German e-invoicing standard based on UN/CEFACT Cross-Industry Invoice syntax.",
             ["DE"], "CII"),
        _xml(OutputFormat.XRECHNUNG_UBL, "XRechnung (UBL)",
             "German e-invoicing standard based on UBL 2.1 syntax.",
             ["DE"], "UBL"),
        _xml(OutputFormat.PEPPOL_BIS, "PEPPOL BIS 3.0",
             "Pan-European e-invoicing format for the PEPPOL network.",
             EU_PEPPOL_COUNTRIES, "UBL"),
        _hybrid_pdf(OutputFormat.FACTURX_EN16931, "Factur-X EN 16931",
                    "Hybrid PDF/A-3 invoice with embedded CII XML at EN 16931 conformance level."),
        _hybrid_pdf(OutputFormat.FACTURX_BASIC, "Factur-X Basic",
                    "Hybrid PDF/A-3 invoice with embedded CII XML at Basic conformance level."),
        _xml(OutputFormat.FATTURAPA, "FatturaPA",
             "Italian electronic invoicing format mandated by the Agenzia delle Entrate.",
             ["IT"], "FatturaPA"),
        _xml(OutputFormat.KSEF, "KSeF FA(3)",
             "Polish structured e-invoice for the Krajowy System e-Faktur.",
             ["PL"], "KSeF"),
        _xml(OutputFormat.NLCIUS, "NLCIUS / SI-UBL 2.0",
             "Dutch CIUS of EN 16931 based on UBL, also known as SI-UBL 2.0.",
             ["NL"], "UBL"),
        _xml(OutputFormat.CIUS_RO, "CIUS-RO",
             "Romanian CIUS of EN 16931 based on UBL for the RO e-Factura system.",
             ["RO"], "UBL"),
    ]
}


def get_format_metadata(format_id: FormatId) -> FormatMetadata:
    """
    Get metadata for a supported format.

    Raises:
        UnknownFormatError: If the format id has no registry entry
    """
    meta = FORMAT_METADATA.get(format_key(format_id))
    if meta is None:
        raise UnknownFormatError(str(format_id))
    return meta


def get_all_formats() -> list[FormatMetadata]:
    return list(FORMAT_METADATA.values())


def get_formats_by_country(country_code: str) -> list[FormatMetadata]:
    code = country_code.strip().upper()
    return [meta for meta in FORMAT_METADATA.values() if code in meta.countries]
