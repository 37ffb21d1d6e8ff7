"""
Analysis package for the Migration Flow Map

Join, classification and flow geometry (migration_flows, flow_geometry) and
the map renderers built on them (map_migration_flows).
"""

from .migration_flows import FlowStyle, MigrationFlowRenderer, RenderPlan

__all__ = ["FlowStyle", "MigrationFlowRenderer", "RenderPlan"]
