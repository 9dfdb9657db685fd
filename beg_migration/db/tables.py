from __future__ import annotations

"""Target table names of the application schema."""

USERS = "users"
LOCATIONS = "locations"
COMPANIES = "companies"
CLIENTS = "clients"
ENGINEERS = "engineers"
PROJECT_TYPES = "project_types"
RATE_CLASSES = "rate_classes"
PROJECTS = "projects"
PROJECT_USERS = "project_users"
PROJECT_PROJECT_TYPES = "project_project_types"
ACTIVITY_TYPES = "activity_types"
ACTIVITIES = "activities"
WORKLOADS = "workloads"
VAT_RATES = "vat_rates"
MONTHLY_HOURS = "monthly_hours"

INVOICES = "invoices"
INVOICE_RATES = "invoice_rates"
INVOICE_OFFERS = "invoice_offers"
INVOICE_ADJUDICATIONS = "invoice_adjudications"
INVOICE_SITUATIONS = "invoice_situations"
INVOICE_DOCUMENTS = "invoice_documents"

# Child tables of an invoice, all keyed by "invoiceId"
INVOICE_CHILD_TABLES = (
    INVOICE_RATES,
    INVOICE_OFFERS,
    INVOICE_ADJUDICATIONS,
    INVOICE_SITUATIONS,
    INVOICE_DOCUMENTS,
)

# Full reset order, most dependent first
RESET_ORDER = (
    *INVOICE_CHILD_TABLES,
    INVOICES,
    ACTIVITIES,
    PROJECT_USERS,
    PROJECT_PROJECT_TYPES,
    PROJECTS,
    ACTIVITY_TYPES,
    RATE_CLASSES,
    ENGINEERS,
    PROJECT_TYPES,
    CLIENTS,
    COMPANIES,
    LOCATIONS,
    WORKLOADS,
    USERS,
    VAT_RATES,
    MONTHLY_HOURS,
)
