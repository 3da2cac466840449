"""
TATAME provisioning: WordPress sites, VPS setup and blogs over SSH.
"""

from .blog_creator import BlogCreationResult, BlogCreator, BlogOptions
from .jobs import ProvisioningJobStore, run_provisioning_job
from .output import SiteCredentials
from .site_creator import SiteCreationOptions, SiteCreationService, VPSReadiness
from .ssh import CommandResult, SSHSession, VPSCredentials
from .vps_setup import VpsSetup, VpsSetupOptions

__all__ = [
    "BlogCreationResult",
    "BlogCreator",
    "BlogOptions",
    "CommandResult",
    "ProvisioningJobStore",
    "SSHSession",
    "SiteCreationOptions",
    "SiteCreationService",
    "SiteCredentials",
    "VPSCredentials",
    "VPSReadiness",
    "VpsSetup",
    "VpsSetupOptions",
    "run_provisioning_job",
]
