from message_relay.server import main

main()
