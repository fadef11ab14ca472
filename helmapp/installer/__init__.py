from .base import Installer, InstallRequest, load_values
from .helm import HelmInstaller

__all__ = ["Installer", "InstallRequest", "HelmInstaller", "load_values"]
