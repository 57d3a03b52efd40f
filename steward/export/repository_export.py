"""
Export built from the steward repositories, delivered as a `data:` URI.
"""
import base64
import csv
import io
import json
import logging
from typing import Any, Dict, Iterable, List

from steward.models import ExportFormat
from steward.repositories import InvitationRepository, MembershipRepository, OrganizationRepository
from .base import DataExportJob, ExportResult

logger = logging.getLogger(__name__)

SUPPORTED_CATEGORIES = ('organization', 'members', 'invitations')


def _data_uri(content: str, mime_type: str) -> str:
    encoded = base64.b64encode(content.encode('utf-8')).decode('ascii')
    return f"data:{mime_type};base64,{encoded}"


def render_csv(bundle: Dict[str, List[Dict[str, Any]]]) -> str:
    """One section per category: a `# category` line, a header row, then the records."""
    buffer = io.StringIO()
    for category, rows in bundle.items():
        buffer.write(f"# {category}\n")
        if not rows:
            buffer.write("\n")
            continue
        fieldnames = list(rows[0].keys())
        writer = csv.DictWriter(buffer, fieldnames=fieldnames, extrasaction='ignore', lineterminator='\n')
        writer.writeheader()
        for row in rows:
            writer.writerow({k: json.dumps(v) if isinstance(v, (dict, list)) else v for k, v in row.items()})
        buffer.write("\n")
    return buffer.getvalue()


class RepositoryDataExportJob(DataExportJob):
    def __init__(self, organizations: OrganizationRepository, memberships: MembershipRepository,
                 invitations: InvitationRepository, max_workers: int = 2):
        super().__init__(max_workers=max_workers)
        self.organizations = organizations
        self.memberships = memberships
        self.invitations = invitations

    def collect(self, organization_id: str, categories: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        organization = self.organizations.get_by_id(organization_id)
        if organization is None:
            return None
        bundle = {}
        for category in categories:
            if category == 'organization':
                bundle[category] = [organization.as_dict(convert_datetime_to_iso_string=True)]
            elif category == 'members':
                bundle[category] = [m.as_dict(convert_datetime_to_iso_string=True)
                                    for m in self.memberships.list_members(organization_id)]
            elif category == 'invitations':
                bundle[category] = [i.as_dict(convert_datetime_to_iso_string=True)
                                    for i in self.invitations.list_for_organization(organization_id)]
            else:
                logger.warning("Ignoring unknown export category %s", category)
        return bundle

    def export(self, organization_id: str, export_format: ExportFormat, categories: Iterable[str]) -> ExportResult:
        bundle = self.collect(organization_id, categories)
        if bundle is None:
            return ExportResult(success=False, error='Organization not found')
        if ExportFormat(export_format) == ExportFormat.json:
            url = _data_uri(json.dumps(bundle, indent=2, default=str), 'application/json')
        else:
            url = _data_uri(render_csv(bundle), 'text/csv')
        logger.info("Exported %s for organization %s", ', '.join(bundle), organization_id)
        return ExportResult(success=True, export_url=url)
