"""Interactive dashboard command"""

from binship.base import ProjectCommand
from binship.renderers.dashboard import run_dashboard
from binship.services.dispatcher import CommandDispatcher


class DashboardCommand(ProjectCommand):
    """
    Interactive mode.

    Stays alive until the user quits, turning key presses into build,
    deploy and monitor requests.
    """

    def execute(self) -> None:
        self.load_config()
        self.run_async(self._run())

    async def _run(self) -> None:
        dispatcher = CommandDispatcher(
            self.bus,
            self.ensure_orchestrator(),
            self.ensure_app_monitor(),
            config_loader=self.config_loader,
            config_path=self.config_path,
        )
        await run_dashboard(
            self.config,
            self.bus,
            dispatcher,
            console=self.console,
            dry_run=self.dry_run,
        )
