from perp_keeper.app.supervisor.manager import Supervisor

__all__ = ["Supervisor"]
