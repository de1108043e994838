# Automatically load all models so metadata knows them
from coopbank.models.branches_model import Branch
from coopbank.models.client_model import Client
from coopbank.models.account_model import Account, AccountMovement
from coopbank.models.caisse_model import CaisseCount, CaisseMovement, CaisseSession
from coopbank.models.ledger_model import ChartAccount, LedgerEntry, LedgerLine
from coopbank.models.loan_installment_model import LoanInstallment
from coopbank.models.loan_model import Loan, LoanStatus
from coopbank.models.loan_payment_allocation_model import LoanPaymentAllocation
from coopbank.models.loan_payment_model import LoanPayment
from coopbank.models.system_settings_model import SystemSetting
