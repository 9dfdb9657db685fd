from __future__ import annotations

"""Fixed lookup tables used by the migration.

Kept as plain data so they can be reviewed and unit tested on their own.
"""

UNCLASSIFIED_LABEL = "Non renseigné"

EMAIL_DOMAIN = "beg-geol.ch"
DEFAULT_PASSWORD = "password123"
SUPER_ADMIN_INITIALS = frozenset({"fp", "mo", "md"})
ADMIN_INITIALS = frozenset({"gg", "sc"})

COUNTRY_CODES = {
    "Suisse": "CH",
    "France": "FR",
    "Italie": "IT",
}
DEFAULT_COUNTRY = "CH"

CANTON_CODES = {
    "Valais": "VS",
    "Vaud": "VD",
    "Genève": "GE",
    "Neuchâtel": "NE",
    "Fribourg": "FR",
    "Jura": "JU",
    "Berne": "BE",
    "Zürich": "ZH",
    "Lucerne": "LU",
    "Uri": "UR",
    "Schwyz": "SZ",
    "Obwald": "OW",
    "Nidwald": "NW",
    "Glarus": "GL",
    "Zug": "ZG",
    "Soleure": "SO",
    "Bâle-Ville": "BS",
    "Bâle-Campagne": "BL",
    "Schaffhouse": "SH",
    "Appenzell Rhodes-Extérieures": "AR",
    "Appenzell Rhodes-Intérieures": "AI",
    "Saint-Gall": "SG",
    "Grisons": "GR",
    "Argovie": "AG",
    "Thurgovie": "TG",
    "Tessin": "TI",
}

ENDED_PROJECT_STATE = "Terminé"

# Activity types: legacy code -> new code / display name
ACTIVITY_CODE_OVERRIDES = {
    "Ex": "Ex",
    "Ec": "Ec",
    "Eo": "Eo",
    "Er": "Er",
    "Es": "Es",
    "Et": "Et",
    "Ma": "Ee",
    "Ed": "Ed",
    "Ef": "Ef",
    "Gm": "Em",
    "NF": "Nf",
    "Ga": "Ga",
    "Gd": "x",
}

ACTIVITY_NAME_OVERRIDES = {
    "Ex": "Etude: expertise, gestion projet",
    "Ec": "Etude: coordination, mail, courrier",
    "Eo": "Etude: offre, facturation",
    "Er": "Etude: analyse, rapport",
    "Es": "Etude: séance, PV",
    "Et": "Etude: terrain spécialiste",
    "Ma": "Etude: essai, terrain opérateur",
    "Ed": "Etude: SIG, dessin spécialiste",
    "Ef": "Etude: terrain aide, dessin/tâche faciles",
    "Gm": "Etude: entretien matériel, manutention",
    "NF": "Hors mandat: non facturable",
    "Ga": "Gestion: administration",
    "Gd": "Gestion: dactylographie (archivée)",
}

NON_BILLABLE_ACTIVITY_NAME = "Non facturable"
NON_BILLABLE_ACTIVITY_CODES = frozenset({"Gc", "Gr", "Ga"})

# Management categories missing from the legacy data: (name, code)
EXTRA_ACTIVITY_TYPES = (
    ("Gestion: comptabilité", "Gc"),
    ("Gestion: RH", "Gr"),
    ("Gestion: archivage", "Ga"),
)

DEFAULT_WORKLOAD = 100

# Swiss VAT history: (first year, last year, rate in percent)
VAT_RATE_BANDS = (
    (1995, 2000, 6.5),
    (2001, 2010, 7.6),
    (2011, 2017, 8.0),
    (2018, 2023, 7.7),
    (2024, 2024, 8.1),
)


def vat_rate_rows() -> list[tuple[int, float]]:
    """Expand ``VAT_RATE_BANDS`` into one (year, rate) pair per calendar year."""
    return [
        (year, rate)
        for first, last, rate in VAT_RATE_BANDS
        for year in range(first, last + 1)
    ]


# Invoice documents (.fab)
# edtType items: 0='Facture', 1='Facture finale', 2='Situation', 3='Acompte'
INVOICE_TYPES = {
    "0": "invoice",
    "1": "final_invoice",
    "2": "situation",
    "3": "deposit",
}
DEFAULT_INVOICE_TYPE = "invoice"

BILLING_MODES = {
    "0": "accordingToData",
    "1": "accordingToOffer",
    "2": "accordingToInvoice",
    "3": "fixedPrice",
}
DEFAULT_BILLING_MODE = "accordingToData"

# edtVisa index -> initials of the approving user
VISA_USER_INITIALS = {
    "0": "fp",
    "1": "js",
    "2": "mo",
}

INVOICE_STATUS_APPROVED = "sent"
INVOICE_STATUS_PENDING = "controle"

DEFAULT_TRAVEL_RATE = 0.65
DEFAULT_VAT_RATE = 8.0

INVOICE_GRID_NAME = "grdFacture"
RATE_SUBTOTAL_LABEL = "Total h."
RATE_FIRST_ROW = 2
RATE_MAX_ROW = 50

# Invoice column -> (row, col) in the grdFacture grid of the legacy layout
DEFAULT_TOTAL_CELLS: dict[str, tuple[int, int]] = {
    "feesBase": (8, 1),
    "feesTotal": (8, 4),
    "feesOthers": (9, 4),
    "feesAdjusted": (10, 4),
    "feesDiscountPercentage": (11, 3),
    "feesDiscountAmount": (11, 4),
    "feesFinalTotal": (12, 4),
    "expensesTravelBase": (16, 1),
    "expensesTravelAdjusted": (16, 2),
    "expensesTravelRate": (16, 3),
    "expensesTravelAmount": (16, 4),
    "expensesOtherBase": (17, 1),
    "expensesOtherAmount": (17, 4),
    "expensesPackagePercentage": (20, 3),
    "expensesPackageAmount": (20, 4),
    "expensesThirdPartyAmount": (21, 4),
    "expensesTotalExpenses": (22, 4),
    "totalHT": (24, 4),
    "vatRate": (25, 3),
    "vatAmount": (25, 4),
    "totalTTC": (26, 4),
}
