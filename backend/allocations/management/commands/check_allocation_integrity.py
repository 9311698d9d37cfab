"""
Django management command to check allocation lines against their usage history
"""
from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Sum

from backend.allocations.models import AllocationLine
from backend.allocations.signals import invalidate_allocation_reports


class Command(BaseCommand):
    help = 'Report allocation lines whose used quantity is over-drawn or disagrees with the recorded samples'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Rewrite used_qty from the recorded samples when that total fits within qty',
        )
        parser.add_argument(
            '--root-id',
            type=str,
            help='Check one lineage only',
        )

    def handle(self, *args, **options):
        fix = options.get('fix', False)
        root_id = options.get('root_id')

        self.stdout.write("=" * 80)
        self.stdout.write(self.style.SUCCESS("ALLOCATION LINE INTEGRITY CHECK"))
        self.stdout.write("=" * 80)

        lines = AllocationLine.objects.select_related('record').annotate(
            sample_total=Sum('used_samples__qty', default=0)
        ).order_by('record_id', 'position', 'id')
        if root_id:
            lines = lines.filter(record__root_id=root_id)

        checked = 0
        issues = []
        for line in lines:
            checked += 1
            overdrawn = line.used_qty > line.qty
            mismatched = line.used_qty != line.sample_total
            if overdrawn or mismatched:
                issues.append(line)
                label = 'OVERDRAWN' if overdrawn else 'MISMATCH'
                self.stdout.write(self.style.WARNING(
                    f"[{label}] {line.record.most_specific_id} {line.record.item} "
                    f"emp={line.emp_code} qty={line.qty} used_qty={line.used_qty} samples={line.sample_total}"
                ))

        self.stdout.write("")
        self.stdout.write(f"Lines checked: {checked}")
        if not issues:
            self.stdout.write(self.style.SUCCESS("No discrepancies found"))
            return
        self.stdout.write(self.style.ERROR(f"Discrepancies: {len(issues)}"))

        if not fix:
            self.stdout.write("Run with --fix to rewrite used_qty from recorded samples")
            return

        fixed = skipped = 0
        with transaction.atomic():
            for line in issues:
                if line.sample_total > line.qty:
                    skipped += 1
                    self.stdout.write(self.style.ERROR(
                        f"  Skipped line {line.id}: samples ({line.sample_total}) exceed qty ({line.qty})"
                    ))
                    continue
                AllocationLine.objects.filter(pk=line.pk).update(used_qty=line.sample_total)
                fixed += 1
        invalidate_allocation_reports()

        self.stdout.write(self.style.SUCCESS(f"Fixed {fixed} line(s)"))
        if skipped:
            self.stdout.write(self.style.WARNING(f"Skipped {skipped} line(s) needing manual review"))
