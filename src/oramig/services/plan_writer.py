"""Human-readable migration plan rendering."""

from dataclasses import dataclass
from typing import Sequence

from oramig.constants import FILE_MODE
from oramig.models import GeneratedArtifacts, RunContext, SpatialIndex
from oramig.services.coordination import MarkerPaths
from oramig.services.script_generator import spatial_index_names


@dataclass(frozen=True)
class DurationEstimates:
    export: str = "5-7 days"
    import_: str = "5-7 days"
    downtime: str = "7-10 days"


class PlanWriterService:
    def __init__(self, logger, console, filesystem_service):
        self.logger = logger
        self.console = console
        self.filesystem_service = filesystem_service

    def build_plan(
        self,
        context: RunContext,
        artifacts: GeneratedArtifacts,
        estimates: DurationEstimates,
        spatial_indexes: Sequence[SpatialIndex] = (),
    ) -> str:
        paths = context.workspace
        markers = MarkerPaths.for_context(context)
        spatial_note = self._spatial_note(spatial_indexes)
        return f"""ORACLE MIGRATION PLAN - SEPARATE ENVIRONMENTS
=============================================

RUN IDENTIFIER: {context.run_id}
SOURCE: {context.source_db} -> TARGET: {context.target_db}
NO DIRECT DATABASE CONNECTIVITY BETWEEN SOURCE AND TARGET

MIGRATION STRATEGY: Data Pump via shared storage ({paths.base_dir})
====================================================================

PHASE 1: PREPARATION (SOURCE host) - done by this planning run
--------------------------------------------------------------
1. Source database analysis: {context.log_file("source_analysis", ".log")}
2. Data Pump directory MIG_DIR -> {paths.data_dir}
3. Export scripts generated
4. Schedule application downtime

PHASE 2: EXPORT (SOURCE host) - {estimates.export}
--------------------------------------------------
1. Stop applications on source
2. Optional rehearsal: {artifacts["source_metadata_export"]}
3. Run: {artifacts["source_export"]}
4. Monitor progress in {paths.log_dir}/
5. Verify dump files in {paths.data_dir}/ ({context.dump_glob})

PHASE 3: TRANSFER (shared storage)
----------------------------------
1. Dump files are visible on the target through the shared mount
2. No manual transfer needed

PHASE 4: IMPORT (TARGET host) - {estimates.import_}
---------------------------------------------------
1. Wait for {markers.export_completed}
2. Run: {artifacts["target_import"]}
3. For spatial optimization: {artifacts["target_spatial_import"]}
4. Monitor progress in {paths.log_dir}/

PHASE 5: POST-MIGRATION (TARGET host)
-------------------------------------
1. Recreate database links (fill in passwords first): {artifacts["dblinks_sql"]}
2. Recreate synonyms: {artifacts["synonyms_sql"]}
3. Validate migration: {artifacts["validation_sql"]}
4. Update application connection strings
5. Performance testing

CRITICAL NOTES:
===============
- TOTAL DOWNTIME: {estimates.downtime} required
- NO direct database connectivity between source and target
- All communication via shared storage
- Markers are advisory: never start a second export or import for this run
  while one is in progress
- An import that ends with errors still writes its completion marker;
  read the marker and full_import_{context.run_id}.log before continuing
- Monitor disk space on the share continuously
{spatial_note}
GENERATED SCRIPTS:
==================
SOURCE host:
  - Export: {artifacts["source_export"]}
  - Metadata export: {artifacts["source_metadata_export"]}

TARGET host:
  - Import: {artifacts["target_import"]}
  - Spatial: {artifacts["target_spatial_import"]}
  - DB Links: {artifacts["dblinks_sql"]}
  - Synonyms: {artifacts["synonyms_sql"]}
  - Validation: {artifacts["validation_sql"]}

VERIFICATION:
=============
- Check export completion: {markers.export_completed}
- Check import completion: {markers.import_completed}
- Check validation completion: {markers.validation_completed}
- Review logs in: {paths.log_dir}/ (run log {context.run_log})
- Current phase at any time: oramig status --run-id {context.run_id}
"""

    def write(
        self,
        context: RunContext,
        artifacts: GeneratedArtifacts,
        estimates: DurationEstimates,
        spatial_indexes: Sequence[SpatialIndex] = (),
    ) -> str:
        path = context.artifact_path("migration_plan")
        content = self.build_plan(context, artifacts, estimates, spatial_indexes)
        self.filesystem_service.write_text_atomic(path, content, FILE_MODE)
        artifacts.add("migration_plan", path)
        self.logger.info("Migration plan generated: %s", path)
        return path

    @staticmethod
    def _spatial_note(spatial_indexes: Sequence[SpatialIndex]) -> str:
        names = spatial_index_names(spatial_indexes)
        if not names:
            return ""
        return (
            "- The spatial import excludes indexes by bare name in every schema:\n"
            f"  {', '.join(names)}\n"
            "  Any non-spatial index with one of these names in another schema is\n"
            "  skipped too; check section 7 of the validation script and recreate it\n"
            "  by hand if needed\n"
        )
