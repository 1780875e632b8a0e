"""
Excel export for bank reconciliations.
Uses openpyxl for Excel generation.
"""
from decimal import Decimal

from django.http import HttpResponse
from openpyxl import Workbook
from openpyxl.cell.cell import MergedCell
from openpyxl.styles import Alignment, Font, PatternFill

HEADER_FILL = PatternFill(start_color='366092', end_color='366092', fill_type='solid')


def create_excel_response(filename):
    """Create HttpResponse for Excel file download."""
    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def style_header_row(ws, row_num, col_count):
    """Apply header styling to a row."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row_num, column=col)
        cell.font = Font(bold=True, color='FFFFFF')
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center', vertical='center')


def style_title_row(ws, row_num, title, col_count):
    """Add and style a title row."""
    ws.merge_cells(start_row=row_num, start_column=1, end_row=row_num, end_column=col_count)
    cell = ws.cell(row=row_num, column=1, value=title)
    cell.font = Font(bold=True, size=14)
    cell.alignment = Alignment(horizontal='center')


def auto_width_columns(ws):
    """Size columns to their longest value, capped at 50."""
    for column_cells in ws.columns:
        max_length = 0
        column = None
        for cell in column_cells:
            if isinstance(cell, MergedCell):
                continue
            if column is None:
                column = cell.column_letter
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        if column:
            ws.column_dimensions[column].width = min(max_length + 2, 50)


def format_currency(value):
    if value is None:
        return ''
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    return value


def build_reconciliation_workbook(reconciliation):
    """
    Two sheets: a summary of the reconciliation and every statement line with
    its match status and linked ledger entry.
    """
    summary = reconciliation.summary()

    wb = Workbook()
    ws = wb.active
    ws.title = 'Summary'
    style_title_row(ws, 1, f'Bank Reconciliation {reconciliation.reconciliation_number}', 2)

    rows = [
        ('Bank Account', str(reconciliation.bank_account)),
        ('GL Account', reconciliation.bank_account.gl_account.code),
        ('Period', f'{reconciliation.period_start} to {reconciliation.period_end}'),
        ('Status', reconciliation.get_status_display()),
        ('Statement Balance', format_currency(reconciliation.statement_balance)),
        ('Ledger Balance', format_currency(reconciliation.ledger_balance)),
        ('Variance', format_currency(reconciliation.variance)),
        ('Total Lines', summary['total_lines']),
        ('Matched', summary['matched']),
        ('Auto-matched', summary['auto_matched']),
        ('Unmatched', summary['unmatched']),
        ('Excluded', summary['excluded']),
        ('Total Deposits', format_currency(summary['total_deposits'])),
        ('Total Withdrawals', format_currency(summary['total_withdrawals'])),
        ('Notes', reconciliation.notes),
    ]
    for row_num, (label, value) in enumerate(rows, start=3):
        ws.cell(row=row_num, column=1, value=label).font = Font(bold=True)
        ws.cell(row=row_num, column=2, value=value)
    auto_width_columns(ws)

    lines_ws = wb.create_sheet('Lines')
    headers = ['#', 'Date', 'Description', 'Reference', 'Amount', 'Status', 'Match', 'Ledger Entry', 'Entry Date']
    for col, header in enumerate(headers, 1):
        lines_ws.cell(row=1, column=col, value=header)
    style_header_row(lines_ws, 1, len(headers))

    for row_num, line in enumerate(reconciliation.lines.select_related('ledger_entry'), start=2):
        entry = line.ledger_entry
        values = [
            line.line_number,
            line.line_date,
            line.description,
            line.reference,
            format_currency(line.amount),
            line.get_status_display(),
            line.match_method,
            entry.pk if entry else '',
            entry.entry_date if entry else '',
        ]
        for col, value in enumerate(values, 1):
            cell = lines_ws.cell(row=row_num, column=col, value=value)
            if col == 5:
                cell.number_format = '#,##0.00'
    auto_width_columns(lines_ws)

    return wb


def export_reconciliation(reconciliation):
    response = create_excel_response(f'{reconciliation.reconciliation_number}.xlsx')
    build_reconciliation_workbook(reconciliation).save(response)
    return response
