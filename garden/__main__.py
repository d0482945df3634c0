from garden.application.api.api_server import main

main()
