from .base import DataExportJob, ExportResult, normalize_categories
from .repository_export import RepositoryDataExportJob, SUPPORTED_CATEGORIES
