"""
Bank statement CSV parsing.

Expected layout: a header row, then one row per transaction with a date,
a description and either a signed amount column or separate debit/credit
columns. Signs are taken as exported by the bank: positive = deposit,
negative = withdrawal.
"""
import csv
import io
from decimal import Decimal, InvalidOperation

from apps.core.exceptions import ValidationError
from apps.core.utils import parse_full_date, quantize_money

DESCRIPTION_HEADERS = ('description', 'memo', 'payee', 'details', 'narrative')
REFERENCE_HEADERS = ('reference', 'ref', 'check', 'cheque', 'number')
DEBIT_HEADERS = ('debit', 'withdrawal')
CREDIT_HEADERS = ('credit', 'deposit')


def _find_column(headers, candidates, exclude=()):
    for candidate in candidates:
        for index, header in enumerate(headers):
            if candidate in header and index not in exclude:
                return index
    return None


def detect_columns(headers):
    """
    Map header names to column indexes.
    Returns a dict with date, description, amount, debit, credit, reference.
    """
    headers = [h.strip().lower() for h in headers]
    columns = {'date': _find_column(headers, ('date',))}
    used = {columns['date']}

    columns['description'] = _find_column(headers, DESCRIPTION_HEADERS, exclude=used)
    used.add(columns['description'])

    split_columns = {
        index for index, header in enumerate(headers)
        if any(word in header for word in DEBIT_HEADERS + CREDIT_HEADERS)
    }
    columns['amount'] = _find_column(headers, ('amount',), exclude=used | split_columns)
    columns['debit'] = columns['credit'] = None
    if columns['amount'] is None:
        columns['debit'] = _find_column(headers, DEBIT_HEADERS, exclude=used)
        used.add(columns['debit'])
        columns['credit'] = _find_column(headers, CREDIT_HEADERS, exclude=used)
    used.update([columns['amount'], columns['debit'], columns['credit']])

    columns['reference'] = _find_column(headers, REFERENCE_HEADERS, exclude=used)

    has_amount = columns['amount'] is not None or columns['debit'] is not None or columns['credit'] is not None
    if columns['date'] is None or columns['description'] is None or not has_amount:
        raise ValidationError(
            "Statement file must have a header row with date, description and amount "
            "(or debit/credit) columns.",
            details={'headers': headers},
        )
    return columns


def parse_statement_amount(raw):
    """
    Parse a bank amount cell. Accepts currency symbols, thousands separators
    and accounting negatives: '(1,250.00)' is -1250.00.
    Returns None for an empty cell.
    """
    text = (raw or '').strip()
    if not text:
        return None
    negative = text.startswith('(') and text.endswith(')')
    text = text.strip('()').replace(',', '').replace(' ', '')
    for symbol in ('$', '€', '£', 'AED', 'USD'):
        text = text.replace(symbol, '')
    if text.endswith('-'):
        negative, text = True, text[:-1]
    amount = Decimal(text)
    if not amount.is_finite():
        raise InvalidOperation(raw)
    return quantize_money(-amount if negative else amount)


def parse_statement_date(raw):
    text = (raw or '').strip()
    if not text:
        raise ValueError('date is empty')
    return parse_full_date(text)


def _cell(row, index):
    if index is None or index >= len(row):
        return ''
    return row[index]


def decode_statement(content):
    if isinstance(content, str):
        return content
    try:
        return content.decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError("Statement file must be a UTF-8 encoded CSV file.")


def parse_statement_csv(content):
    """
    Parse statement CSV text (or bytes).

    Returns {'lines': [...], 'skipped_rows': [...]} where each line is a dict
    with line_number, line_date, description, reference and amount, and each
    skipped row records its file row number and the reason.
    Raises ValidationError when the file is empty or yields no valid rows.
    """
    text = decode_statement(content)
    rows = [row for row in csv.reader(io.StringIO(text)) if any(cell.strip() for cell in row)]
    if not rows:
        raise ValidationError("The statement file is empty.")
    if len(rows) < 2:
        raise ValidationError("The statement file has a header row but no transactions.")

    columns = detect_columns(rows[0])
    lines = []
    skipped_rows = []

    for row_num, row in enumerate(rows[1:], start=2):
        try:
            line_date = parse_statement_date(_cell(row, columns['date']))
        except (ValueError, OverflowError):
            skipped_rows.append({'row': row_num, 'reason': f"Invalid date '{_cell(row, columns['date'])}'"})
            continue

        try:
            if columns['amount'] is not None:
                amount = parse_statement_amount(_cell(row, columns['amount']))
            else:
                debit = parse_statement_amount(_cell(row, columns['debit']))
                credit = parse_statement_amount(_cell(row, columns['credit']))
                amount = None
                if debit is not None or credit is not None:
                    amount = (credit or Decimal('0.00')) - abs(debit or Decimal('0.00'))
        except (InvalidOperation, ValueError):
            skipped_rows.append({'row': row_num, 'reason': 'Invalid amount'})
            continue

        if amount is None:
            skipped_rows.append({'row': row_num, 'reason': 'Missing amount'})
            continue
        if amount == 0:
            skipped_rows.append({'row': row_num, 'reason': 'Zero amount'})
            continue

        lines.append({
            'line_number': len(lines) + 1,
            'line_date': line_date,
            'description': _cell(row, columns['description']).strip()[:500],
            'reference': _cell(row, columns['reference']).strip()[:200],
            'amount': amount,
        })

    if not lines:
        raise ValidationError(
            "No valid transactions found in the statement file.",
            details={'skipped_rows': skipped_rows},
        )

    return {'lines': lines, 'skipped_rows': skipped_rows}
