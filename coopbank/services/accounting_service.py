"""
Automatic double-entry postings for banking operations.

Every builder below produces a list of balanced ``LedgerLeg``s and hands
them to ``post_entry``, which refuses to write anything that does not
balance. ``try_post`` wraps a builder in a SAVEPOINT of the caller's
transaction: the parent operation commits even when the posting fails,
and the gap shows up in ``/accounting/validation``.
"""
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from coopbank.core.config import DEFAULT_CURRENCY
from coopbank.exceptions import UnbalancedEntryError
from coopbank.models.branches_model import Branch
from coopbank.models.ledger_model import LedgerEntry, LedgerLine

logger = logging.getLogger(__name__)

DEBIT = "D"
CREDIT = "C"


class ChartAccounts:
    # Class 1 - treasury
    VAULT_HEAD_OFFICE = "1.0.1.1"
    VAULT_MAKAMBA = "1.0.1.2"
    VAULT_JABE = "1.0.1.3"
    VAULT_KAMENGE = "1.0.1.4"
    VAULT_NYANZA = "1.0.1.5"
    TELLER_TILL = "1.0.2"
    BANK_BRB = "1.1.1.1"
    BANK_BANCOBU = "1.1.1.2"
    BANK_BGF = "1.1.1.3"

    # Class 2 - customer operations
    LOANS_ST_AGRICULTURE = "2.1.1.1"
    LOANS_ST_TRADE = "2.1.1.2"
    LOANS_ST_CONSUMER = "2.1.1.3"
    LOANS_ST_HOUSING = "2.1.1.4"
    LOANS_ST_LIVESTOCK = "2.1.1.5"
    LOANS_ST_OTHER = "2.1.1.6"
    LOANS_MT = "2.1.2"
    LOANS_LT = "2.1.3"
    ACCRUED_INTEREST = "2.1.8"
    DOUBTFUL_LOANS = "2.1.9"
    SIGHT_DEPOSITS_INDIVIDUALS = "2.2.1.1"
    SIGHT_DEPOSITS_GROUPS = "2.2.1.2"
    TERM_DEPOSITS = "2.2.2"
    BLOCKED_SAVINGS = "2.2.3"

    # Class 3 - sundry
    CASH_SHORTAGE = "3.4.5"
    CASH_SURPLUS = "3.4.6"

    # Class 5 - equity
    CAPITAL = "5.5.1"
    RESERVES = "5.4.1"
    YEAR_RESULT = "5.6.1"

    # Class 6 - expenses
    INTEREST_ON_DEPOSITS = "6.0.1"
    STAFF_COSTS = "6.5.1"
    SUNDRY_EXPENSES = "6.6.1"

    # Class 7 - income
    LOAN_INTEREST = "7.0.1"
    FILE_FEES = "7.1.1"
    COMMISSIONS = "7.1.2"
    ACCOUNT_FEES = "7.1.3"
    SUNDRY_INCOME = "7.2.1"


CHART_LABELS = {
    ChartAccounts.VAULT_HEAD_OFFICE: "Coffre-fort siège",
    ChartAccounts.VAULT_MAKAMBA: "Coffre-fort Makamba",
    ChartAccounts.VAULT_JABE: "Coffre-fort Jabe",
    ChartAccounts.VAULT_KAMENGE: "Coffre-fort Kamenge",
    ChartAccounts.VAULT_NYANZA: "Coffre-fort Nyanza",
    ChartAccounts.TELLER_TILL: "Caisses guichetiers",
    ChartAccounts.BANK_BRB: "BRB",
    ChartAccounts.BANK_BANCOBU: "BANCOBU",
    ChartAccounts.BANK_BGF: "BGF",
    ChartAccounts.LOANS_ST_AGRICULTURE: "Crédits CT agriculture",
    ChartAccounts.LOANS_ST_TRADE: "Crédits CT commerce",
    ChartAccounts.LOANS_ST_CONSUMER: "Crédits CT consommation",
    ChartAccounts.LOANS_ST_HOUSING: "Crédits CT habitat",
    ChartAccounts.LOANS_ST_LIVESTOCK: "Crédits CT élevage",
    ChartAccounts.LOANS_ST_OTHER: "Crédits CT autres",
    ChartAccounts.LOANS_MT: "Crédits moyen terme",
    ChartAccounts.LOANS_LT: "Crédits long terme",
    ChartAccounts.ACCRUED_INTEREST: "Intérêts courus",
    ChartAccounts.DOUBTFUL_LOANS: "Créances en souffrance",
    ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS: "Dépôts à vue individus",
    ChartAccounts.SIGHT_DEPOSITS_GROUPS: "Dépôts à vue groupements",
    ChartAccounts.TERM_DEPOSITS: "Dépôts à terme",
    ChartAccounts.BLOCKED_SAVINGS: "Épargne bloquée",
    ChartAccounts.CASH_SHORTAGE: "Manquant de caisse",
    ChartAccounts.CASH_SURPLUS: "Excédent de caisse",
    ChartAccounts.CAPITAL: "Capital",
    ChartAccounts.RESERVES: "Réserves",
    ChartAccounts.YEAR_RESULT: "Résultat de l'exercice",
    ChartAccounts.INTEREST_ON_DEPOSITS: "Intérêts sur dépôts",
    ChartAccounts.STAFF_COSTS: "Frais de personnel",
    ChartAccounts.SUNDRY_EXPENSES: "Charges diverses",
    ChartAccounts.LOAN_INTEREST: "Intérêts sur crédits",
    ChartAccounts.FILE_FEES: "Frais de dossier",
    ChartAccounts.COMMISSIONS: "Commissions",
    ChartAccounts.ACCOUNT_FEES: "Frais de tenue de compte",
    ChartAccounts.SUNDRY_INCOME: "Produits divers",
}

BANK_ACCOUNTS = (ChartAccounts.BANK_BRB, ChartAccounts.BANK_BANCOBU, ChartAccounts.BANK_BGF)

# loan purpose code -> loan account
LOAN_ACCOUNT_BY_PURPOSE = {
    1: ChartAccounts.LOANS_ST_AGRICULTURE,
    2: ChartAccounts.LOANS_ST_TRADE,
    3: ChartAccounts.LOANS_ST_CONSUMER,
    4: ChartAccounts.LOANS_ST_HOUSING,
    5: ChartAccounts.LOANS_ST_LIVESTOCK,
    6: ChartAccounts.LOANS_ST_OTHER,
}

# fallback when the branch row has no vault code
VAULT_BY_BRANCH = {
    1: ChartAccounts.VAULT_HEAD_OFFICE,
    2: ChartAccounts.VAULT_MAKAMBA,
    3: ChartAccounts.VAULT_JABE,
    4: ChartAccounts.VAULT_KAMENGE,
    5: ChartAccounts.VAULT_NYANZA,
}


@dataclass(frozen=True)
class LedgerLeg:
    account_code: str
    side: str
    amount: Decimal


def loan_account_for(purpose: Optional[int]) -> str:
    return LOAN_ACCOUNT_BY_PURPOSE.get(purpose, ChartAccounts.LOANS_ST_OTHER)


def vault_account_for(db: Session, branch_id: int) -> str:
    branch = db.query(Branch).filter(Branch.branch_id == branch_id).first()
    if branch and branch.vault_account_code:
        return branch.vault_account_code
    return VAULT_BY_BRANCH.get(branch_id, ChartAccounts.VAULT_HEAD_OFFICE)


def teller_till_account(teller_id: int) -> str:
    return f"{ChartAccounts.TELLER_TILL}.{teller_id}"


def check_balanced(legs: Iterable[LedgerLeg]) -> tuple[Decimal, Decimal]:
    legs = list(legs)
    if len(legs) < 2:
        raise UnbalancedEntryError("An entry needs at least one debit and one credit leg")

    for leg in legs:
        if leg.side not in (DEBIT, CREDIT):
            raise UnbalancedEntryError(f"Invalid side {leg.side!r} on account {leg.account_code}")
        if Decimal(str(leg.amount)) <= 0:
            raise UnbalancedEntryError(f"Non-positive amount on account {leg.account_code}")

    total_debit = sum((Decimal(str(l.amount)) for l in legs if l.side == DEBIT), Decimal("0"))
    total_credit = sum((Decimal(str(l.amount)) for l in legs if l.side == CREDIT), Decimal("0"))
    if total_debit != total_credit:
        raise UnbalancedEntryError(
            f"Unbalanced entry: debit={total_debit}, credit={total_credit}"
        )
    return total_debit, total_credit


def next_entry_no(db: Session, branch_id: int) -> int:
    current = (
        db.query(func.max(LedgerEntry.entry_no))
        .filter(LedgerEntry.branch_id == branch_id)
        .scalar()
    )
    return (current or 0) + 1


def post_entry(
        db: Session,
        branch_id: int,
        label: str,
        legs: list[LedgerLeg],
        client_account_id: Optional[int] = None,
        value_date: Optional[date] = None,
        currency: Optional[str] = None,
        created_by: Optional[int] = None,
) -> LedgerEntry:
    """Write one balanced entry and its legs; nothing is written if it does not balance."""
    check_balanced(legs)

    entry = LedgerEntry(
        branch_id=branch_id,
        entry_no=next_entry_no(db, branch_id),
        value_date=value_date or date.today(),
        label=label,
        currency=currency or DEFAULT_CURRENCY,
        client_account_id=client_account_id,
        created_by=created_by,
    )
    for leg in legs:
        entry.lines.append(
            LedgerLine(account_code=leg.account_code, side=leg.side, amount=Decimal(str(leg.amount)))
        )
    db.add(entry)
    db.flush()

    logger.info("Ledger entry #%s (branch %s) posted: %s", entry.entry_no, branch_id, label)
    return entry


def try_post(db: Session, builder: Callable[..., LedgerEntry], *args, **kwargs) -> Optional[LedgerEntry]:
    """
    Run ``builder`` inside a SAVEPOINT.

    On failure only the savepoint is rolled back: the caller's balance
    mutation stays in the outer transaction and ``None`` is returned.
    """
    try:
        with db.begin_nested():
            return builder(db, *args, **kwargs)
    except Exception as exc:
        logger.warning("Accounting entry %s failed: %s", builder.__name__, exc)
        return None


# -------------------------------------------------
# Client operations
# -------------------------------------------------
def post_deposit(db: Session, branch_id: int, client_account_id: int, amount, label: Optional[str] = None):
    vault = vault_account_for(db, branch_id)
    return post_entry(
        db,
        branch_id,
        label or "Dépôt client",
        [
            LedgerLeg(vault, DEBIT, amount),
            LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, CREDIT, amount),
        ],
        client_account_id=client_account_id,
    )


def post_withdrawal(db: Session, branch_id: int, client_account_id: int, amount, label: Optional[str] = None):
    vault = vault_account_for(db, branch_id)
    return post_entry(
        db,
        branch_id,
        label or "Retrait client",
        [
            LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, DEBIT, amount),
            LedgerLeg(vault, CREDIT, amount),
        ],
        client_account_id=client_account_id,
    )


def post_internal_transfer(db: Session, branch_id: int, from_account_id: int, to_account_id: int, amount,
                           label: Optional[str] = None):
    return post_entry(
        db,
        branch_id,
        label or f"Virement interne {from_account_id} -> {to_account_id}",
        [
            LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, DEBIT, amount),
            LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, CREDIT, amount),
        ],
        client_account_id=from_account_id,
    )


# -------------------------------------------------
# Loans
# -------------------------------------------------
def post_disbursement(
        db: Session,
        branch_id: int,
        loan_id: int,
        client_account_id: int,
        amount,
        purpose: Optional[int],
        processing_fee=0,
        insurance_fee=0,
) -> LedgerEntry:
    """
    Loan release: D loan account / C client deposits, then one entry per
    fee netted off the client account. Returns the main entry.
    """
    main = post_entry(
        db,
        branch_id,
        f"Déblocage crédit - Dossier {loan_id}",
        [
            LedgerLeg(loan_account_for(purpose), DEBIT, amount),
            LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, CREDIT, amount),
        ],
        client_account_id=client_account_id,
    )

    if processing_fee and Decimal(str(processing_fee)) > 0:
        post_entry(
            db,
            branch_id,
            f"Frais de dossier - Dossier {loan_id}",
            [
                LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, DEBIT, processing_fee),
                LedgerLeg(ChartAccounts.FILE_FEES, CREDIT, processing_fee),
            ],
            client_account_id=client_account_id,
        )

    if insurance_fee and Decimal(str(insurance_fee)) > 0:
        post_entry(
            db,
            branch_id,
            f"Assurance crédit - Dossier {loan_id}",
            [
                LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, DEBIT, insurance_fee),
                LedgerLeg(ChartAccounts.COMMISSIONS, CREDIT, insurance_fee),
            ],
            client_account_id=client_account_id,
        )

    logger.info("Disbursement entries posted: loan %s, amount %s", loan_id, amount)
    return main


def _repayment_legs(purpose, principal, interest, penalty, reverse: bool) -> list[LedgerLeg]:
    client_side, income_side = (CREDIT, DEBIT) if reverse else (DEBIT, CREDIT)
    legs = []
    for target, amount in (
            (loan_account_for(purpose), principal),
            (ChartAccounts.LOAN_INTEREST, interest),
            (ChartAccounts.SUNDRY_INCOME, penalty),
    ):
        if amount and Decimal(str(amount)) > 0:
            legs.append(LedgerLeg(ChartAccounts.SIGHT_DEPOSITS_INDIVIDUALS, client_side, amount))
            legs.append(LedgerLeg(target, income_side, amount))
    return legs


def post_loan_repayment(db: Session, branch_id: int, loan_id: int, client_account_id: int, purpose,
                        principal, interest, penalty=0):
    """Capital to the loan account, interest to income, penalty to sundry income."""
    return post_entry(
        db,
        branch_id,
        f"Remboursement crédit - Dossier {loan_id}",
        _repayment_legs(purpose, principal, interest, penalty, reverse=False),
        client_account_id=client_account_id,
    )


def post_repayment_reversal(db: Session, branch_id: int, loan_id: int, client_account_id: int, purpose,
                            principal, interest, penalty=0):
    return post_entry(
        db,
        branch_id,
        f"Annulation remboursement - Dossier {loan_id}",
        _repayment_legs(purpose, principal, interest, penalty, reverse=True),
        client_account_id=client_account_id,
    )


# -------------------------------------------------
# Caisse (teller till)
# -------------------------------------------------
def post_caisse_funding(db: Session, branch_id: int, amount, teller_id: int):
    return post_entry(
        db,
        branch_id,
        f"Approvisionnement caisse guichetier {teller_id}",
        [
            LedgerLeg(teller_till_account(teller_id), DEBIT, amount),
            LedgerLeg(vault_account_for(db, branch_id), CREDIT, amount),
        ],
    )


def post_caisse_return(db: Session, branch_id: int, amount, teller_id: int):
    return post_entry(
        db,
        branch_id,
        f"Reversement caisse guichetier {teller_id}",
        [
            LedgerLeg(vault_account_for(db, branch_id), DEBIT, amount),
            LedgerLeg(teller_till_account(teller_id), CREDIT, amount),
        ],
    )


def post_caisse_shortage(db: Session, branch_id: int, amount, teller_id: int):
    return post_entry(
        db,
        branch_id,
        f"Manquant de caisse - Guichetier {teller_id}",
        [
            LedgerLeg(ChartAccounts.CASH_SHORTAGE, DEBIT, amount),
            LedgerLeg(teller_till_account(teller_id), CREDIT, amount),
        ],
    )


def post_caisse_surplus(db: Session, branch_id: int, amount, teller_id: int):
    return post_entry(
        db,
        branch_id,
        f"Excédent de caisse - Guichetier {teller_id}",
        [
            LedgerLeg(teller_till_account(teller_id), DEBIT, amount),
            LedgerLeg(ChartAccounts.CASH_SURPLUS, CREDIT, amount),
        ],
    )


# -------------------------------------------------
# Vault / bank
# -------------------------------------------------
def post_vault_to_bank(db: Session, branch_id: int, amount, bank_account: str = ChartAccounts.BANK_BRB):
    return post_entry(
        db,
        branch_id,
        "Virement vers banque",
        [
            LedgerLeg(bank_account, DEBIT, amount),
            LedgerLeg(vault_account_for(db, branch_id), CREDIT, amount),
        ],
    )


def post_bank_to_vault(db: Session, branch_id: int, amount, bank_account: str = ChartAccounts.BANK_BRB):
    return post_entry(
        db,
        branch_id,
        "Retrait de banque",
        [
            LedgerLeg(vault_account_for(db, branch_id), DEBIT, amount),
            LedgerLeg(bank_account, CREDIT, amount),
        ],
    )


def post_inter_vault(db: Session, source_branch_id: int, dest_branch_id: int, amount):
    # recorded in the source branch's journal
    return post_entry(
        db,
        source_branch_id,
        f"Transfert vers agence {dest_branch_id}",
        [
            LedgerLeg(vault_account_for(db, dest_branch_id), DEBIT, amount),
            LedgerLeg(vault_account_for(db, source_branch_id), CREDIT, amount),
        ],
    )
