from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from scorekeeper.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/games')

    from scorekeeper.api.settings import settings
    flask_app.register_blueprint(settings, url_prefix='/api/settings')

    from scorekeeper.api.history import history
    flask_app.register_blueprint(history, url_prefix='/api/history')

    from scorekeeper.errors import GameError

    @flask_app.errorhandler(GameError)
    def handle_game_error(exc):
        flask_app.logger.info(f"[rejected] {exc.__class__.__name__} reason={exc.reason}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    # Bind the Socket.IO handlers to the initialized socketio instance
    from scorekeeper.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with the default roster."""
        from scorekeeper.services.sync import save_deck_size, save_players
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            save_players(flask_app.config.get('DEFAULT_PLAYERS', []))
            save_deck_size(flask_app.config.get('DEFAULT_DECK_SIZE', 36))
            print('Database has been reset and seeded!')

    @click.command('show-stages')
    @click.option('--players', 'player_count', type=int, default=4, show_default=True)
    @click.option('--deck', 'deck_size', type=click.Choice(['36', '54']), default='36', show_default=True)
    def show_stages_command(player_count, deck_size):
        """Prints the stage layout and cards dealt per round."""
        from scorekeeper.services.games.rounds import card_schedule
        from scorekeeper.services.games.stages import (
            describe_stage, max_cards_for_player_count, resolve_stage_config,
        )
        deck = int(deck_size)
        config = resolve_stage_config(player_count, deck)
        max_cards = max_cards_for_player_count(player_count, deck)
        click.echo(f'{player_count} players, {deck} cards: {config.total_rounds} rounds, max {max_cards} cards')
        for number, stage in enumerate(config.stages, start=1):
            click.echo(f'  stage {number}: {describe_stage(stage, max_cards)}')
        click.echo('  hands: ' + ' '.join(str(c) for c in card_schedule(config, max_cards)))

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(show_stages_command)

    return flask_app
