# -*- coding: utf-8 -*-
"""
pwj_speed/visualization.py

Plots of recorded diagnostics:
- plot_st_drive_boundary: drivable ST region, QP profile and fitted speed limit

Not imported by the package itself, so the optimizer never needs matplotlib.
"""

import logging
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np

from .diagnostics import PlanningDebug

logger = logging.getLogger(__name__)


def plot_st_drive_boundary(debug: PlanningDebug, output_filename: str,
                           st_graph_name: Optional[str] = None) -> bool:
    """
    Plot the recorded ST drive boundary and speed plans.

    Args:
        debug: Diagnostics recorded by the optimizer
        output_filename: Output plot file path
        st_graph_name: ST-graph entry to draw (default: the last one)

    Returns:
        False when nothing was recorded, True after the figure is written.
    """
    if debug.is_empty():
        logger.warning("No diagnostics recorded, nothing to plot")
        return False

    st_graph = None
    for graph in debug.st_graphs:
        if st_graph_name is None or graph.name == st_graph_name:
            st_graph = graph

    fig, (ax_st, ax_vs) = plt.subplots(1, 2, figsize=(14, 5))

    # (a) ST-graph
    if st_graph is not None:
        for boundary in st_graph.boundaries:
            if not boundary.points:
                continue
            polygon = np.array(boundary.points + boundary.points[:1])
            ax_st.plot(polygon[:, 0], polygon[:, 1], "k-", linewidth=1.0, label=boundary.name)
            ax_st.fill(polygon[:, 0], polygon[:, 1], color="tab:green", alpha=0.15)

    for plan in debug.speed_plans:
        if not plan.speed_points:
            continue
        t = [p.t for p in plan.speed_points]
        s = [p.s for p in plan.speed_points]
        ax_st.plot(t, s, linewidth=1.5, label=plan.name)

    ax_st.set_xlabel("Time (s)", fontsize=12)
    ax_st.set_ylabel("Distance (m)", fontsize=12)
    ax_st.set_title("(a) ST drive boundary", fontsize=14, fontweight="bold")
    ax_st.grid(True, alpha=0.3)
    ax_st.legend(fontsize=9)

    # (b) speed over distance
    for plan in debug.speed_plans:
        if not plan.speed_points:
            continue
        ax_vs.plot([p.s for p in plan.speed_points], [p.v for p in plan.speed_points],
                   linewidth=1.5, label=plan.name)
    if st_graph is not None and st_graph.speed_limit:
        limit = np.array(st_graph.speed_limit)
        ax_vs.plot(limit[:, 0], limit[:, 1], "r--", linewidth=1.0, label="smoothed speed limit")

    ax_vs.set_xlabel("Distance (m)", fontsize=12)
    ax_vs.set_ylabel("Speed (m/s)", fontsize=12)
    ax_vs.set_title("(b) Speed profile", fontsize=14, fontweight="bold")
    ax_vs.grid(True, alpha=0.3)
    ax_vs.legend(fontsize=9)

    plt.tight_layout()
    plt.savefig(output_filename, dpi=150, bbox_inches="tight")
    plt.close(fig)
    logger.info(f"ST drive boundary plot saved to {output_filename}")
    return True
