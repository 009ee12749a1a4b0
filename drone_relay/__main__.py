from drone_relay.main import run

run()
