from dcaadvisor.main import run

run()
