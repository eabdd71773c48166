from vpdesigner.reporting.bed import export_bed_files
from vpdesigner.reporting.probes import write_agilent_probe_file
from vpdesigner.reporting.summary import write_design_summary, write_viewpoint_table

__all__ = [
    "export_bed_files",
    "write_agilent_probe_file",
    "write_design_summary",
    "write_viewpoint_table",
]
